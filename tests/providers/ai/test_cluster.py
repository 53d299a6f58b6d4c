import asyncio

import httpx
import pytest
from openai import APIConnectionError, BadRequestError

from repomind.errors import ModelNotFoundError, ProviderTimeoutError, ServiceUnavailableError
from repomind.providers.ai.cluster import (
    DEFAULT_CLUSTER_AI_MODEL,
    ClusterAIProvider,
    detect_base_url,
    health_check_url_from_base_url,
)
from repomind.providers.ai.interface import FunctionCall, FunctionDeclaration
from tests.providers.ai.responses import RecordingHandler, chat_completion, chat_completion_stream, tool_call

BASE_URL = "http://ai.test/v1"


def get_provider(handler: RecordingHandler | httpx.MockTransport, **kwargs: float) -> ClusterAIProvider:
    http_client = handler.http_client() if isinstance(handler, RecordingHandler) else httpx.AsyncClient(transport=handler)
    return ClusterAIProvider(base_url=BASE_URL, default_model="qwen", http_client=http_client, max_retries=0, **kwargs)  # pyright: ignore[reportArgumentType]


def error_response(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"message": message, "type": "error"}})


class TestBaseUrl:
    def test_explicit_service_url(self, clean_env: pytest.MonkeyPatch):
        clean_env.setenv("CLUSTER_AI_SERVICE_URL", "http://localhost:9000/v1")
        clean_env.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")

        assert detect_base_url() == "http://localhost:9000/v1"

    def test_in_cluster(self, clean_env: pytest.MonkeyPatch):
        clean_env.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")

        assert detect_base_url() == "http://mcp-api-server.ai-infrastructure.svc.cluster.local:8000/v1"

    def test_in_cluster_custom_service(self, clean_env: pytest.MonkeyPatch):
        clean_env.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
        clean_env.setenv("CLUSTER_AI_SERVICE", "llm")
        clean_env.setenv("CLUSTER_AI_NAMESPACE", "models")

        assert detect_base_url() == "http://llm.models.svc.cluster.local:8000/v1"

    def test_public_ingress(self, clean_env: pytest.MonkeyPatch):
        assert detect_base_url() == "https://api.askcollections.com/mcp/v1"

    @pytest.mark.parametrize(
        ("base_url", "expected"),
        [
            ("https://api.askcollections.com/mcp/v1", "https://api.askcollections.com/health"),
            ("http://mcp-api-server.ai-infrastructure.svc.cluster.local:8000/v1", "http://mcp-api-server.ai-infrastructure.svc.cluster.local:8000/health"),
            ("http://localhost:9000", "http://localhost:9000/health"),
        ],
    )
    def test_health_check_url(self, base_url: str, expected: str):
        assert health_check_url_from_base_url(base_url) == expected

    def test_defaults(self, clean_env: pytest.MonkeyPatch):
        provider = ClusterAIProvider(http_client=httpx.AsyncClient())

        assert provider.base_url == "https://api.askcollections.com/mcp/v1"
        assert provider.default_model == DEFAULT_CLUSTER_AI_MODEL
        assert provider.health_check_url == "https://api.askcollections.com/health"


class TestClassifyError:
    @pytest.fixture
    def provider(self) -> ClusterAIProvider:
        return get_provider(RecordingHandler())

    def test_timeout(self, provider: ClusterAIProvider):
        assert isinstance(provider.classify_error(TimeoutError(), model="qwen", timeout=60), ProviderTimeoutError)

    def test_connection(self, provider: ClusterAIProvider):
        error = APIConnectionError(request=httpx.Request("POST", f"{BASE_URL}/chat/completions"))

        assert isinstance(provider.classify_error(error, model="qwen", timeout=60), ServiceUnavailableError)

    def test_other(self, provider: ClusterAIProvider):
        assert provider.classify_error(ValueError("bad input"), model="qwen", timeout=60) is None


class TestGenerateContent:
    async def test_success(self):
        handler = RecordingHandler(chat_completion(content="Hello from the cluster"))

        assert await get_provider(handler).generate_content("Hi") == "Hello from the cluster"

        assert handler.paths == ["/v1/chat/completions"]
        assert handler.bodies[0]["model"] == "qwen"

    async def test_tool_calls_only(self):
        handler = RecordingHandler(chat_completion(content=None, tool_calls=[tool_call("select_files", '{"files": ["README.md"]}')]))

        assert await get_provider(handler).generate_content("Hi") == ""

    async def test_model_not_found(self):
        handler = RecordingHandler(error_response(404, "The model `qwen` does not exist."))

        with pytest.raises(ModelNotFoundError, match="Cluster AI model not found: qwen"):
            _ = await get_provider(handler).generate_content("Hi")

    async def test_service_unavailable(self):
        handler = RecordingHandler(error_response(503, "Service Unavailable"))

        with pytest.raises(ServiceUnavailableError, match="Cluster AI service unavailable"):
            _ = await get_provider(handler).generate_content("Hi")

    async def test_other_errors_propagate(self):
        handler = RecordingHandler(error_response(400, "invalid request"))

        with pytest.raises(BadRequestError):
            _ = await get_provider(handler).generate_content("Hi")

    async def test_timeout(self):
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=chat_completion(content="too late"))

        provider = get_provider(httpx.MockTransport(slow), request_timeout=0.05)

        with pytest.raises(ProviderTimeoutError, match="timed out after 0.05 seconds"):
            _ = await provider.generate_content("Hi")


class TestStream:
    async def test_success(self):
        handler = RecordingHandler(chat_completion_stream("Hel", "lo"))

        chunks = [chunk async for chunk in get_provider(handler).generate_content_stream("Hi")]

        assert chunks == ["Hel", "lo"]

    async def test_timeout(self):
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return chat_completion_stream("too late")

        provider = get_provider(httpx.MockTransport(slow), stream_timeout=0.05)

        with pytest.raises(ProviderTimeoutError):
            _ = [chunk async for chunk in provider.generate_content_stream("Hi")]


async def test_generate_with_functions():
    handler = RecordingHandler(chat_completion(tool_calls=[tool_call("select_files", '{"files": ["main.py"]}')]))

    result = await get_provider(handler).generate_with_functions(
        "Which files?", [FunctionDeclaration(name="select_files", description="Select files.")]
    )

    assert result.function_calls == [FunctionCall(name="select_files", args={"files": ["main.py"]})]


class TestHealth:
    async def test_healthy(self):
        handler = RecordingHandler(httpx.Response(200, json={"status": "ok"}))

        assert await get_provider(handler).check_health() is True
        assert handler.paths == ["/health"]

    async def test_unhealthy(self):
        assert await get_provider(RecordingHandler(httpx.Response(503))).check_health() is False

    async def test_unreachable(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert await get_provider(httpx.MockTransport(refuse)).check_health() is False


class TestModels:
    async def test_available_models(self):
        handler = RecordingHandler(
            {
                "object": "list",
                "data": [
                    {"id": "qwen", "object": "model", "created": 0, "owned_by": "cluster"},
                    {"id": "llama", "object": "model", "created": 0, "owned_by": "cluster"},
                ],
            }
        )

        assert await get_provider(handler).get_available_models() == ["qwen", "llama"]
        assert handler.paths == ["/v1/models"]

    async def test_fallback_to_default_model(self):
        assert await get_provider(RecordingHandler(error_response(500, "boom"))).get_available_models() == ["qwen"]
