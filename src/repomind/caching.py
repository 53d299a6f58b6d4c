from collections.abc import Awaitable, Callable
from logging import Logger, getLogger
from typing import Any

from pydantic import BaseModel, TypeAdapter

from repomind.clients.models.github import GitHubProfile, GitHubRepository, RepositoryFileTree
from repomind.errors import RepoMindError
from repomind.providers.cache.factory import get_cache_provider
from repomind.providers.cache.interface import CacheProvider

logger: Logger = getLogger(__name__)

TTL_FILE = 3600
TTL_REPO = 900
TTL_PROFILE = 1800
TTL_TREE = 900
TTL_QUERY = 86400

FILE_SELECTION_ADAPTER: TypeAdapter[list[str]] = TypeAdapter(list[str])


def normalize_query(query: str) -> str:
    return query.lower().strip()


def file_key(owner: str, repo: str, path: str, sha: str) -> str:
    return f"file:{owner}/{repo}:{path}:{sha}"


def repo_key(owner: str, repo: str) -> str:
    return f"repo:{owner}/{repo}"


def profile_key(username: str) -> str:
    return f"profile:{username}"


def tree_key(owner: str, repo: str, branch: str) -> str:
    return f"tree:{owner}/{repo}:{branch}"


def query_key(owner: str, repo: str, query: str) -> str:
    return f"query:{owner}/{repo}:{normalize_query(query)}"


class ResponseCache:
    """Fixed-TTL caching of GitHub responses and AI file selections.

    File contents are keyed by their blob sha, so a changed file misses the cache without any invalidation. Cache
    failures never reach the caller: reads degrade to `None` and writes to a no-op.
    """

    _cache_provider: CacheProvider | None

    def __init__(self, cache_provider: CacheProvider | None = None):
        self._cache_provider = cache_provider

    @property
    def cache_provider(self) -> CacheProvider:
        if self._cache_provider is None:
            self._cache_provider = get_cache_provider()
        return self._cache_provider

    async def _safe[T](self, operation: Callable[[], Awaitable[T]]) -> T | None:
        try:
            return await operation()
        except (RepoMindError, ValueError) as e:
            logger.warning(f"Cache operation failed (gracefully degrading): {e}")
            return None

    async def _read[M: BaseModel](self, key: str, model: type[M]) -> M | None:
        async def read() -> M | None:
            cached: Any = await self.cache_provider.get(key)  # pyright: ignore[reportAny]
            return None if cached is None else model.model_validate(cached)

        return await self._safe(read)

    async def _write(self, key: str, ttl: int, value: Any) -> None:  # pyright: ignore[reportAny]
        _ = await self._safe(lambda: self.cache_provider.setex(key, ttl, value))

    # Files

    async def cache_file(self, owner: str, repo: str, path: str, sha: str, content: str) -> None:
        await self._write(file_key(owner, repo, path, sha), TTL_FILE, content)

    async def get_cached_file(self, owner: str, repo: str, path: str, sha: str) -> str | None:
        async def read() -> str | None:
            cached: Any = await self.cache_provider.get(file_key(owner, repo, path, sha))  # pyright: ignore[reportAny]
            return cached if isinstance(cached, str) else None

        return await self._safe(read)

    # Repositories

    async def cache_repo_metadata(self, owner: str, repo: str, repository: GitHubRepository, ttl: int = TTL_REPO) -> None:
        await self._write(repo_key(owner, repo), ttl, repository.model_dump(mode="json"))

    async def get_cached_repo_metadata(self, owner: str, repo: str) -> GitHubRepository | None:
        return await self._read(repo_key(owner, repo), GitHubRepository)

    # Profiles

    async def cache_profile_data(self, username: str, profile: GitHubProfile, ttl: int = TTL_PROFILE) -> None:
        await self._write(profile_key(username), ttl, profile.model_dump(mode="json"))

    async def get_cached_profile_data(self, username: str) -> GitHubProfile | None:
        return await self._read(profile_key(username), GitHubProfile)

    # File trees

    async def cache_file_tree(self, owner: str, repo: str, branch: str, file_tree: RepositoryFileTree) -> None:
        await self._write(tree_key(owner, repo, branch), TTL_TREE, file_tree.model_dump(mode="json"))

    async def get_cached_file_tree(self, owner: str, repo: str, branch: str) -> RepositoryFileTree | None:
        return await self._read(tree_key(owner, repo, branch), RepositoryFileTree)

    # AI file selections

    async def cache_query_selection(self, owner: str, repo: str, query: str, files: list[str]) -> None:
        """Remember the files the AI selected for a query. Queries are matched case and whitespace insensitively."""

        await self._write(query_key(owner, repo, query), TTL_QUERY, files)

    async def get_cached_query_selection(self, owner: str, repo: str, query: str) -> list[str] | None:
        async def read() -> list[str] | None:
            cached: Any = await self.cache_provider.get(query_key(owner, repo, query))  # pyright: ignore[reportAny]
            return None if cached is None else FILE_SELECTION_ADAPTER.validate_python(cached)

        return await self._safe(read)

    # Maintenance

    async def clear_repo_cache(self, owner: str, repo: str) -> int:
        """Delete every cached entry of a repository and return how many keys were deleted.

        Relies on pattern listing, so it deletes nothing on providers that cannot list keys.
        """

        async def clear() -> int:
            keys: list[str] = await self.cache_provider.keys(f"*:{owner}/{repo}:*")

            if await self.cache_provider.exists(repo_key(owner, repo)):
                keys.append(repo_key(owner, repo))

            if not keys:
                logger.info(f"No cached entries found for {owner}/{repo}")
                return 0

            return await self.cache_provider.delete(*keys)

        return await self._safe(clear) or 0

    async def get_cache_stats(self) -> dict[str, bool]:
        return {"available": bool(await self._safe(lambda: self.cache_provider.ping()))}
