"""API v1 endpoints package."""

from src.api.v1.endpoints import (
    access_requests,
    actors,
    admin,
    audit,
    records,
    usage,
    verification,
)

__all__ = ["access_requests", "actors", "admin", "audit", "records", "usage", "verification"]
