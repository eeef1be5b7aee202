"""Usage metering API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.v1.dependencies import CurrentPrincipal, actor_id_of
from src.core.config import get_settings
from src.models.domain.usage import UsageStats
from src.services.usage_meter import UsageMeter

router = APIRouter()


def get_usage_meter() -> UsageMeter:
    """Get advisory usage meter instance."""
    return UsageMeter(settings=get_settings())


UsageMeterDep = Annotated[UsageMeter, Depends(get_usage_meter)]


@router.get("/me", response_model=UsageStats)
async def get_my_usage(
    principal: CurrentPrincipal,
    meter: UsageMeterDep,
) -> UsageStats:
    """Get the caller's advisory usage for the current UTC day."""
    return await meter.get_usage(actor_id_of(principal))
