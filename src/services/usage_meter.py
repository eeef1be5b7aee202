"""Daily usage meter for advisory features, backed by Redis.

Counts advisory calls per actor per UTC day. Counters expire at the next
UTC midnight, so each day starts from zero. The meter carries no
authorization weight and is unrelated to the consent ledger.
"""

import logging
import uuid
from datetime import UTC, datetime, time, timedelta

from redis import Redis

from src.core.config import Settings, get_settings
from src.models.domain.usage import UsageStats

logger = logging.getLogger(__name__)


class UsageLimitExceeded(Exception):
    """Raised when an actor has used up today's allowance."""

    def __init__(self, message: str, stats: UsageStats) -> None:
        super().__init__(message)
        self.stats = stats


def next_midnight(now: datetime) -> datetime:
    """Start of the next UTC day."""
    return datetime.combine(now.astimezone(UTC).date() + timedelta(days=1), time.min, tzinfo=UTC)


class UsageMeter:
    """Per-actor, per-day counter stored in Redis."""

    KEY_PREFIX = "usage"

    def __init__(
        self,
        redis_client: Redis | None = None,  # type: ignore[type-arg]
        settings: Settings | None = None,
        feature: str = "advisory",
    ) -> None:
        """Initialize the meter.

        Args:
            redis_client: Redis client instance. If None, creates from settings.
            settings: Application settings. Defaults to get_settings().
            feature: Feature name used in the counter key.
        """
        self.settings = settings or get_settings()
        self._redis: Redis | None = redis_client  # type: ignore[type-arg]
        self.feature = feature
        self.daily_limit = self.settings.advisory_daily_limit

    @property
    def redis(self) -> Redis:  # type: ignore[type-arg]
        """Get or create Redis client (lazy initialization)."""
        if self._redis is None:
            self._redis = Redis.from_url(str(self.settings.redis_url))
        return self._redis

    def _make_key(self, actor_id: uuid.UUID, now: datetime) -> str:
        day = now.astimezone(UTC).date().isoformat()
        return f"{self.KEY_PREFIX}:{self.feature}:{actor_id}:{day}"

    def _stats(self, used: int, now: datetime) -> UsageStats:
        remaining = max(0, self.daily_limit - used)
        percentage = min(100, round(used * 100 / self.daily_limit)) if self.daily_limit else 100
        return UsageStats(
            daily_limit=self.daily_limit,
            used=min(used, self.daily_limit),
            remaining=remaining,
            reset_at=next_midnight(now),
            percentage=percentage,
        )

    async def get_usage(
        self,
        actor_id: uuid.UUID,
        now: datetime | None = None,
    ) -> UsageStats:
        """Get today's usage without counting a call."""
        now = now or datetime.now(UTC)
        current = self.redis.get(self._make_key(actor_id, now))
        return self._stats(int(current) if current else 0, now)

    async def consume(
        self,
        actor_id: uuid.UUID,
        now: datetime | None = None,
    ) -> UsageStats:
        """Count one call against today's allowance.

        Returns:
            Usage after this call

        Raises:
            UsageLimitExceeded: If the allowance was already used up
        """
        now = now or datetime.now(UTC)
        key = self._make_key(actor_id, now)

        # INCR and EXPIREAT in one pipeline so the key never outlives the day
        pipe = self.redis.pipeline()
        pipe.incr(key)
        pipe.expireat(key, next_midnight(now))
        results = pipe.execute()

        new_count = int(results[0])
        stats = self._stats(new_count, now)
        if new_count > self.daily_limit:
            logger.info(
                "Daily usage limit reached",
                extra={"actor_id": str(actor_id), "feature": self.feature},
            )
            raise UsageLimitExceeded(
                f"Daily limit of {self.daily_limit} {self.feature} requests reached",
                stats=stats,
            )
        return stats
