from typing import Any, Optional
import json
import logging
import redis
from fastapi.encoders import jsonable_encoder
from app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = (
    redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    if settings.REDIS_URL
    else None
)

def set_cache(key: str, value: Any, expire: int = 3600) -> bool:
    """
    Set a cache value with expiration time (default 1 hour)
    """
    if redis_client is None:
        return False
    try:
        redis_client.setex(key, expire, json.dumps(jsonable_encoder(value)))
        return True
    except redis.RedisError as e:
        logger.warning("cache set failed for %s: %s", key, e)
        return False

def get_cache(key: str) -> Optional[Any]:
    """
    Get a cached value
    """
    if redis_client is None:
        return None
    try:
        data = redis_client.get(key)
        return json.loads(data) if data else None
    except redis.RedisError as e:
        logger.warning("cache get failed for %s: %s", key, e)
        return None

def delete_cache(key: str) -> bool:
    if redis_client is None:
        return False
    try:
        redis_client.delete(key)
        return True
    except redis.RedisError as e:
        logger.warning("cache delete failed for %s: %s", key, e)
        return False

def clear_cache_pattern(pattern: str) -> bool:
    """
    Clear all cache keys matching a pattern
    """
    if redis_client is None:
        return False
    try:
        keys = list(redis_client.scan_iter(match=pattern))
        if keys:
            redis_client.delete(*keys)
        return True
    except redis.RedisError as e:
        logger.warning("cache clear failed for %s: %s", pattern, e)
        return False

def storefront_key(platform_product_id: str) -> str:
    return f"storefront:product:{platform_product_id}"

def invalidate_product(platform_product_id: Optional[str]) -> None:
    """Drop cached storefront payloads for one product (or all when unknown)."""
    if platform_product_id:
        delete_cache(storefront_key(platform_product_id))
    else:
        clear_cache_pattern("storefront:product:*")

def blacklist_token(token: str, ttl: int) -> bool:
    if redis_client is None:
        return False
    try:
        redis_client.setex(f"blacklist:{token}", max(ttl, 1), "true")
        return True
    except redis.RedisError as e:
        logger.warning("token blacklist failed: %s", e)
        return False

def is_token_blacklisted(token: str) -> bool:
    if redis_client is None:
        return False
    try:
        return bool(redis_client.get(f"blacklist:{token}"))
    except redis.RedisError as e:
        logger.warning("token blacklist lookup failed: %s", e)
        return False
