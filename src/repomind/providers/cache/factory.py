import os
from logging import Logger, getLogger

from repomind.errors import CacheConfigurationError
from repomind.providers.cache.hosted_kv import HostedKVCacheProvider
from repomind.providers.cache.interface import CacheProvider
from repomind.providers.cache.redis import RedisCacheProvider
from repomind.providers.holder import ProviderHolder

logger: Logger = getLogger(__name__)

HOSTED_KV_ENV_VARS = ("KV_REST_API_URL", "KV_URL", "KV_REST_API_TOKEN")


def get_cache_provider_name() -> str | None:
    if provider := os.getenv("CACHE_PROVIDER"):
        return provider.lower()
    return None


def get_redis_url() -> str | None:
    return os.getenv("REDIS_URL")


def detect_hosted_kv() -> bool:
    return any(os.getenv(env_var) for env_var in HOSTED_KV_ENV_VARS)


def create_cache_provider() -> CacheProvider:
    """Create the cache provider named by `CACHE_PROVIDER`, or detect one from the environment.

    Detection prefers a self-hosted `REDIS_URL`, then hosted KV credentials, and otherwise falls back to the hosted KV
    provider with a warning.

    Raises:
        CacheConfigurationError: If `CACHE_PROVIDER=redis` is set without `REDIS_URL`, or the hosted KV provider is
            selected without its credentials.
    """

    provider_name: str | None = get_cache_provider_name()
    redis_url: str | None = get_redis_url()

    if provider_name is None:
        if redis_url:
            return RedisCacheProvider(redis_url=redis_url)

        if detect_hosted_kv():
            return HostedKVCacheProvider()

        logger.warning("No cache provider explicitly configured. Defaulting to Vercel KV. Set CACHE_PROVIDER=redis|vercel-kv to avoid this warning.")
        return HostedKVCacheProvider()

    match provider_name:
        case "redis":
            if not redis_url:
                raise CacheConfigurationError(setting="REDIS_URL", message="CACHE_PROVIDER=redis requires the REDIS_URL environment variable.")
            return RedisCacheProvider(redis_url=redis_url)
        case "vercel-kv":
            return HostedKVCacheProvider()
        case _:
            logger.warning(f"Unknown CACHE_PROVIDER: {provider_name}. Falling back to Vercel KV.")
            return HostedKVCacheProvider()


cache_provider_holder: ProviderHolder[CacheProvider] = ProviderHolder(factory=create_cache_provider)


def get_cache_provider() -> CacheProvider:
    return cache_provider_holder.get()


def reset_cache_provider() -> None:
    cache_provider_holder.reset()
