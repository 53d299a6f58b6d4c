import asyncio
import os
import re
from collections.abc import AsyncIterator, Sequence
from logging import Logger, getLogger
from typing import Any, ClassVar, NoReturn, override

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError

from repomind.errors import AIProviderError, ModelNotFoundError, ProviderTimeoutError, ServiceUnavailableError
from repomind.providers.ai.cluster_discovery import (
    get_cluster_ai_endpoint,
    get_cluster_ai_namespace,
    get_cluster_ai_path,
    get_cluster_ai_service,
)
from repomind.providers.ai.interface import FunctionCallResult, FunctionDeclaration, GenerateOptions
from repomind.providers.ai.openai import OpenAIProvider, build_tools

logger: Logger = getLogger(__name__)

DEFAULT_CLUSTER_AI_MODEL = "/app/models/text_generation/qwen2.5-7b-instruct"
PLACEHOLDER_API_KEY = "cluster-ai"

CLIENT_TIMEOUT = 60.0
CLIENT_MAX_RETRIES = 2
REQUEST_TIMEOUT = 60.0
STREAM_TIMEOUT = 120.0
HEALTH_CHECK_TIMEOUT = 5.0


def get_cluster_ai_model() -> str:
    return os.getenv("CLUSTER_AI_MODEL") or DEFAULT_CLUSTER_AI_MODEL


def get_cluster_ai_api_key() -> str:
    return os.getenv("CLUSTER_AI_API_KEY") or PLACEHOLDER_API_KEY


def detect_base_url() -> str:
    """Pick the chat completions base URL of the cluster AI service.

    In order: an explicit `CLUSTER_AI_SERVICE_URL`, the in-cluster service DNS name when `KUBERNETES_SERVICE_HOST` is
    set, and finally the public ingress.
    """

    if service_url := os.getenv("CLUSTER_AI_SERVICE_URL"):
        return service_url

    if os.getenv("KUBERNETES_SERVICE_HOST"):
        return f"http://{get_cluster_ai_service()}.{get_cluster_ai_namespace()}.svc.cluster.local:8000/v1"

    return f"{get_cluster_ai_endpoint()}{get_cluster_ai_path()}/v1"


def health_check_url_from_base_url(base_url: str) -> str:
    root: str = re.sub(r"/v1.*$", "", base_url)
    root = re.sub(r"/mcp$", "", root)
    return f"{root}/health"


class ClusterAIProvider(OpenAIProvider):
    """An OpenAI-compatible model served from the Kubernetes cluster's AI infrastructure.

    Requests race an explicit deadline on top of the HTTP client timeout, and failures are reported as timeouts,
    missing models or an unavailable service where they can be recognised.
    """

    name: ClassVar[str] = "Cluster AI"

    base_url: str
    health_check_url: str
    http_client: httpx.AsyncClient
    request_timeout: float
    stream_timeout: float

    def __init__(
        self,
        base_url: str | None = None,
        default_model: str | None = None,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        request_timeout: float = REQUEST_TIMEOUT,
        stream_timeout: float = STREAM_TIMEOUT,
        max_retries: int = CLIENT_MAX_RETRIES,
    ):
        self.base_url = (base_url or detect_base_url()).rstrip("/")
        self.health_check_url = health_check_url_from_base_url(self.base_url)
        self.http_client = http_client or httpx.AsyncClient()
        self.request_timeout = request_timeout
        self.stream_timeout = stream_timeout

        default_model = default_model or get_cluster_ai_model()

        logger.info(f"Initializing Cluster AI with base URL {self.base_url} and model {default_model}")

        super().__init__(
            default_model=default_model,
            client=AsyncOpenAI(
                api_key=api_key or get_cluster_ai_api_key(),
                base_url=self.base_url,
                timeout=CLIENT_TIMEOUT,
                max_retries=max_retries,
                http_client=self.http_client,
            ),
        )

    def classify_error(self, error: Exception, model: str, timeout: float) -> AIProviderError | None:
        """Map a failure to a timeout, a missing model or an unavailable service. Returns None for anything else."""

        status_code: int | None = error.status_code if isinstance(error, APIStatusError) else None
        message: str = str(error).lower()

        if isinstance(error, TimeoutError | APITimeoutError) or "timeout" in message or "timed out" in message:
            return ProviderTimeoutError(provider=self.name, timeout=timeout)

        if status_code == 404 or "not found" in message:
            return ModelNotFoundError(provider=self.name, model=model, base_url=self.base_url)

        if status_code == 503 or isinstance(error, APIConnectionError) or "unavailable" in message:
            return ServiceUnavailableError(provider=self.name)

        return None

    def _raise_classified(self, error: Exception, model: str, timeout: float) -> NoReturn:
        logger.error(f"Cluster AI request to {self.base_url}/chat/completions with model {model} failed: {error!r}")

        if classified := self.classify_error(error, model=model, timeout=timeout):
            raise classified from error

        raise error

    @override
    async def generate_content(self, prompt: str, options: GenerateOptions | None = None) -> str:
        model: str = self.get_model(options)

        logger.debug(f"Requesting {self.base_url}/chat/completions with model {model}")

        try:
            return await asyncio.wait_for(super().generate_content(prompt, options), timeout=self.request_timeout)
        except (TimeoutError, OpenAIError) as e:
            self._raise_classified(e, model=model, timeout=self.request_timeout)

    @override
    async def generate_content_stream(self, prompt: str, options: GenerateOptions | None = None) -> AsyncIterator[str]:
        """Stream a response. The upstream stream is closed once `stream_timeout` has elapsed, even if nobody is
        consuming it, and the next read raises `ProviderTimeoutError`."""

        model: str = self.get_model(options)
        loop = asyncio.get_running_loop()
        deadline: float = loop.time() + self.stream_timeout

        request_args: dict[str, Any] = self._request_args(prompt, options)
        if tools := build_tools(options.tools if options else None):
            request_args["tools"] = tools

        try:
            stream = await asyncio.wait_for(self.client.chat.completions.create(**request_args, stream=True), timeout=self.stream_timeout)
        except (TimeoutError, OpenAIError) as e:
            self._raise_classified(e, model=model, timeout=self.stream_timeout)

        abort_tasks: set[asyncio.Task[None]] = set()

        def abort() -> None:
            logger.warning(f"Cluster AI stream exceeded {self.stream_timeout:g} seconds, closing it")
            abort_tasks.add(loop.create_task(stream.close()))

        timer = loop.call_at(deadline, abort)

        try:
            while True:
                if (remaining := deadline - loop.time()) <= 0:
                    raise ProviderTimeoutError(provider=self.name, timeout=self.stream_timeout)

                try:
                    chunk = await asyncio.wait_for(anext(stream), timeout=remaining)
                except StopAsyncIteration:
                    return

                if chunk.choices and (content := chunk.choices[0].delta.content):
                    yield content
        except (TimeoutError, OpenAIError) as e:
            self._raise_classified(e, model=model, timeout=self.stream_timeout)
        finally:
            _ = timer.cancel()
            await stream.close()

    @override
    async def generate_with_functions(
        self,
        prompt: str,
        functions: Sequence[FunctionDeclaration],
        options: GenerateOptions | None = None,
    ) -> FunctionCallResult:
        model: str = self.get_model(options)

        try:
            return await asyncio.wait_for(super().generate_with_functions(prompt, functions, options), timeout=self.request_timeout)
        except (TimeoutError, OpenAIError) as e:
            self._raise_classified(e, model=model, timeout=self.request_timeout)

    async def check_health(self) -> bool:
        try:
            response = await self.http_client.get(self.health_check_url, timeout=HEALTH_CHECK_TIMEOUT)
        except httpx.HTTPError as e:
            logger.warning(f"Cluster AI health check failed: {e}")
            return False

        return response.is_success

    async def get_available_models(self) -> list[str]:
        try:
            return [model.id async for model in self.client.models.list()]
        except OpenAIError as e:
            logger.warning(f"Failed to fetch available models: {e}")
            return [self.default_model]
