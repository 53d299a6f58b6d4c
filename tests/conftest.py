import os
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from typing import Any, ClassVar, override

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from githubkit.github import GitHub
from pydantic import BaseModel

from repomind.clients.github import get_githubkit_client
from repomind.providers.ai.interface import AIProvider, FunctionCall, FunctionCallResult, FunctionDeclaration, GenerateOptions
from repomind.providers.cache.redis import RedisCacheProvider

GITHUB_TOKEN = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PERSONAL_ACCESS_TOKEN")

requires_github = pytest.mark.skipif(GITHUB_TOKEN is None, reason="GITHUB_TOKEN is required for GitHub end-to-end tests")

ENVIRONMENT_VARIABLES = [
    "CACHE_PROVIDER",
    "REDIS_URL",
    "KV_REST_API_URL",
    "KV_REST_API_TOKEN",
    "KV_URL",
    "AI_PROVIDER",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_MODEL",
    "CLUSTER_AI_ENABLED",
    "CLUSTER_AI_SERVICE_URL",
    "CLUSTER_AI_SERVICE",
    "CLUSTER_AI_NAMESPACE",
    "CLUSTER_AI_ENDPOINT",
    "CLUSTER_AI_PATH",
    "CLUSTER_AI_PORT",
    "CLUSTER_AI_MODEL",
    "CLUSTER_AI_API_KEY",
    "KUBERNETES_SERVICE_HOST",
    "KUBERNETES_SERVICE_PORT",
]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for env_var in ENVIRONMENT_VARIABLES:
        monkeypatch.delenv(env_var, raising=False)

    return monkeypatch


@pytest.fixture
async def githubkit_client() -> AsyncGenerator[GitHub[Any], Any]:
    githubkit_client = get_githubkit_client()

    async with githubkit_client:
        yield githubkit_client


@pytest.fixture
async def fake_redis() -> AsyncGenerator[FakeAsyncRedis, Any]:
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)

    yield client

    await client.aclose()


@pytest.fixture
def redis_cache_provider(fake_redis: FakeAsyncRedis) -> RedisCacheProvider:
    return RedisCacheProvider(redis_url="redis://localhost:6379", client=fake_redis)


class FakeAIProvider(AIProvider):
    """Scripted responses. Every prompt it receives is recorded in `prompts`."""

    name: ClassVar[str] = "Fake"

    text: str
    chunks: list[str]
    function_calls: list[FunctionCall]
    error: Exception | None
    prompts: list[str]
    functions: list[FunctionDeclaration]

    def __init__(
        self,
        text: str = "",
        chunks: list[str] | None = None,
        function_calls: list[FunctionCall] | None = None,
        error: Exception | None = None,
    ):
        self.default_model = "fake-model"
        self.text = text
        self.chunks = chunks or []
        self.function_calls = function_calls or []
        self.error = error
        self.prompts = []
        self.functions = []

    @override
    async def generate_content(self, prompt: str, options: GenerateOptions | None = None) -> str:
        self.prompts.append(prompt)

        if self.error:
            raise self.error

        return self.text

    @override
    async def generate_content_stream(self, prompt: str, options: GenerateOptions | None = None) -> AsyncIterator[str]:
        self.prompts.append(prompt)

        if self.error:
            raise self.error

        for chunk in self.chunks:
            yield chunk

    @override
    async def generate_with_functions(
        self,
        prompt: str,
        functions: Sequence[FunctionDeclaration],
        options: GenerateOptions | None = None,
    ) -> FunctionCallResult:
        self.prompts.append(prompt)
        self.functions.extend(functions)

        if self.error:
            raise self.error

        return FunctionCallResult(function_calls=self.function_calls, text=self.text or None)


# E2E Test Data


class E2ERepository(BaseModel):
    owner: str
    repo: str


class E2EProfile(BaseModel):
    username: str


@pytest.fixture
def e2e_repository() -> E2ERepository:
    return E2ERepository(owner="strawgate", repo="github-issues-e2e-test")


@pytest.fixture
def e2e_missing_repository() -> E2ERepository:
    return E2ERepository(owner="strawgate", repo="missing")


@pytest.fixture
def e2e_profile() -> E2EProfile:
    return E2EProfile(username="octocat")
