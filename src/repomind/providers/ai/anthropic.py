import os
from collections.abc import AsyncIterator, Sequence
from logging import Logger, getLogger
from typing import Any, ClassVar, override

from anthropic import AsyncAnthropic
from anthropic.types import Message

from repomind.errors import MissingCredentialsError
from repomind.providers.ai.interface import AIProvider, FunctionCall, FunctionCallResult, FunctionDeclaration, GenerateOptions

logger: Logger = getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_MAX_TOKENS = 4096


def get_anthropic_api_key() -> str | None:
    return os.getenv("ANTHROPIC_API_KEY")


def get_anthropic_model() -> str:
    return os.getenv("ANTHROPIC_MODEL") or DEFAULT_ANTHROPIC_MODEL


def to_anthropic_tool(function: FunctionDeclaration) -> dict[str, Any]:
    # Messages API tools must declare an object schema
    return {
        "name": function.name,
        "description": function.description,
        "input_schema": {**function.parameters, "type": "object"},
    }


def extract_text(message: Message) -> str:
    return "".join(block.text for block in message.content if block.type == "text")


class AnthropicProvider(AIProvider):
    name: ClassVar[str] = "Anthropic"

    client: AsyncAnthropic

    def __init__(self, api_key: str | None = None, default_model: str | None = None, client: AsyncAnthropic | None = None):
        self.default_model = default_model or get_anthropic_model()

        if client is not None:
            self.client = client
            return

        if not (api_key := api_key or get_anthropic_api_key()):
            raise MissingCredentialsError(provider=self.name, env_var="ANTHROPIC_API_KEY")

        self.client = AsyncAnthropic(api_key=api_key)

    def _request_args(self, prompt: str, options: GenerateOptions | None) -> dict[str, Any]:
        options = options or GenerateOptions()

        request_args: dict[str, Any] = {
            "model": self.get_model(options),
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
        }

        if options.temperature is not None:
            request_args["temperature"] = options.temperature
        if options.top_p is not None:
            request_args["top_p"] = options.top_p

        return request_args

    @override
    async def generate_content(self, prompt: str, options: GenerateOptions | None = None) -> str:
        message: Message = await self.client.messages.create(**self._request_args(prompt, options))

        return extract_text(message)

    @override
    async def generate_content_stream(self, prompt: str, options: GenerateOptions | None = None) -> AsyncIterator[str]:
        async with self.client.messages.stream(**self._request_args(prompt, options)) as stream:
            async for event in stream:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    yield event.delta.text

    @override
    async def generate_with_functions(
        self,
        prompt: str,
        functions: Sequence[FunctionDeclaration],
        options: GenerateOptions | None = None,
    ) -> FunctionCallResult:
        message: Message = await self.client.messages.create(
            **self._request_args(prompt, options),
            tools=[to_anthropic_tool(function) for function in functions],
        )

        function_calls: list[FunctionCall] = [
            FunctionCall(name=block.name, args=block.input if isinstance(block.input, dict) else {})  # pyright: ignore[reportUnknownArgumentType]
            for block in message.content
            if block.type == "tool_use"
        ]

        return FunctionCallResult(function_calls=function_calls, text=extract_text(message) or None)
