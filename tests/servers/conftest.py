from datetime import UTC, datetime
from typing import Any, override

import pytest
from fastmcp.client.client import CallToolResult

from repomind.analytics import Analytics
from repomind.assistant import RepositoryAssistant
from repomind.caching import ResponseCache
from repomind.clients.github import GitHubClient
from repomind.clients.models.github import (
    CommitAuthor,
    CommitSummary,
    FileNode,
    GitHubProfile,
    GitHubRepository,
    LanguageShare,
    RepositoryDetails,
    RepositoryFileTree,
    RepositoryReadme,
)
from repomind.errors import ResourceNotFoundError
from repomind.providers.cache.redis import RedisCacheProvider
from tests.conftest import FakeAIProvider


class FakeGitHubClient(GitHubClient):
    """Serves a single `octocat/hello` repository from memory and counts the requests it receives."""

    repository: GitHubRepository = GitHubRepository(
        name="hello",
        full_name="octocat/hello",
        description="Hello world",
        html_url="https://github.com/octocat/hello",
        stars=42,
        language="Python",
        forks=3,
        open_issues=1,
        default_branch="main",
        owner_login="octocat",
        updated_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
    )

    profile: GitHubProfile = GitHubProfile(
        login="octocat",
        avatar_url="https://avatars.githubusercontent.com/u/583231",
        html_url="https://github.com/octocat",
        name="The Octocat",
        public_repos=8,
        followers=100,
        following=9,
        created_at=datetime(2011, 1, 25, 18, 44, 36, tzinfo=UTC),
    )

    files: dict[str, str] = {
        "README.md": "# Hello",
        "src/app.py": "print('hello')",
    }

    requests: list[str]

    def __init__(self):
        super().__init__()
        self.requests = []

    @override
    async def get_profile(self, username: str) -> GitHubProfile:
        self.requests.append(f"profile:{username}")

        if username != self.profile.login:
            raise ResourceNotFoundError(action="Get profile", resource=username)

        return self.profile

    @override
    async def get_repository(self, owner: str, repo: str) -> GitHubRepository:
        self.requests.append(f"repository:{owner}/{repo}")

        if f"{owner}/{repo}" != self.repository.full_name:
            raise ResourceNotFoundError(action="Get repository", resource=f"{owner}/{repo}")

        return self.repository

    @override
    async def get_repository_tree(self, owner: str, repo: str, branch: str = "main") -> RepositoryFileTree:
        self.requests.append(f"tree:{owner}/{repo}:{branch}")

        return RepositoryFileTree(
            tree=[
                FileNode(path="README.md", mode="100644", type="blob", sha="readme-sha"),
                FileNode(path="src", mode="040000", type="tree", sha="src-sha"),
                FileNode(path="src/app.py", mode="100644", type="blob", sha=f"app-sha-{branch}"),
            ]
        )

    @override
    async def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        self.requests.append(f"file:{owner}/{repo}:{path}")

        if path not in self.files:
            raise ResourceNotFoundError(action="Get file content", resource=path)

        return self.files[path]

    @override
    async def get_profile_readme(self, username: str) -> str | None:
        return "I am the Octocat."

    @override
    async def get_repositories_readmes(self, username: str) -> list[RepositoryReadme]:
        return [RepositoryReadme(repo="hello", content="# Hello", description="Hello world")]

    @override
    async def get_repository_details(self, owner: str, repo: str) -> RepositoryDetails | None:
        return RepositoryDetails(
            languages=[LanguageShare(name="Python", color="#3572A5", size=300, percentage="100.0")],
            commits=[
                CommitSummary(
                    message="Initial commit",
                    date=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
                    author=CommitAuthor(name="The Octocat", login="octocat"),
                )
            ],
            total_size=300,
        )


def get_result_from_call_tool_result(call_tool_result: CallToolResult) -> dict[str, Any]:
    assert call_tool_result.structured_content is not None
    assert isinstance(call_tool_result.structured_content, dict)
    return call_tool_result.structured_content


@pytest.fixture
def fake_github_client() -> FakeGitHubClient:
    return FakeGitHubClient()


@pytest.fixture
def fake_ai_provider() -> FakeAIProvider:
    return FakeAIProvider(text="It prints hello.")


@pytest.fixture
def analytics(redis_cache_provider: RedisCacheProvider) -> Analytics:
    return Analytics(cache_provider=redis_cache_provider)


@pytest.fixture
def assistant(
    fake_github_client: FakeGitHubClient, redis_cache_provider: RedisCacheProvider, analytics: Analytics, fake_ai_provider: FakeAIProvider
) -> RepositoryAssistant:
    return RepositoryAssistant(
        github_client=fake_github_client,
        response_cache=ResponseCache(cache_provider=redis_cache_provider),
        analytics=analytics,
        ai_provider=fake_ai_provider,
    )
