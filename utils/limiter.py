import logging

from fastapi import Request
from slowapi import Limiter

from utils.config import Settings

logger = logging.getLogger("backend.limiter")


def forwarded_for_ip(request: Request) -> str:
    """Resolve client IP using X-Forwarded-For first, then fallback to socket IP."""
    xff = request.headers.get("x-forwarded-for") or request.headers.get("X-Forwarded-For")
    if xff:
        ip = xff.split(',')[0].strip()
        if ip:
            return ip
    return request.client.host if request.client else ""


def create_limiter(settings: Settings) -> Limiter:
    """One limiter per app: Redis storage if REDIS_URL is set, otherwise in-memory."""
    if settings.redis_url:
        logger.info("Using Redis for rate limiting")
        return Limiter(
            key_func=forwarded_for_ip,
            storage_uri=settings.redis_url,
            enabled=settings.rate_limit_enabled,
        )
    logger.info("Using in-memory rate limiting (Redis not configured)")
    return Limiter(key_func=forwarded_for_ip, enabled=settings.rate_limit_enabled)
