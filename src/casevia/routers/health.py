"""Health and readiness endpoints."""
from fastapi import APIRouter

from casevia.core.cache_manager import public_page_cache
from casevia.core.redis_client import ping_redis
from casevia.core.settings import get_settings
from casevia.services.circuit_breaker import all_breaker_stats

router = APIRouter()


@router.get("/health", tags=["meta"])  # simple health
async def health() -> dict[str, object]:
    settings = get_settings()
    return {
        "status": "ok",
        "environment": settings.environment,
        "debug": settings.debug,
        "version": "0.1.0",
    }


@router.get("/health/ready", tags=["meta"])
async def readiness() -> dict[str, object]:
    """Redis reachability, public page cache statistics and provider circuit states."""
    redis_ok = await ping_redis()
    return {
        "status": "ok" if redis_ok else "degraded",
        "redis_connected": redis_ok,
        "cache": await public_page_cache.get_stats(),
        "circuit_breakers": all_breaker_stats(),
    }
