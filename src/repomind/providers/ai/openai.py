import json
import os
from collections.abc import AsyncIterator, Sequence
from logging import Logger, getLogger
from typing import Any, ClassVar, override

from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion, ChatCompletionMessage

from repomind.errors import EmptyResponseError, MissingCredentialsError
from repomind.providers.ai.interface import AIProvider, FunctionCall, FunctionCallResult, FunctionDeclaration, GenerateOptions, Tool

logger: Logger = getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4"


def get_openai_api_key() -> str | None:
    return os.getenv("OPENAI_API_KEY")


def get_openai_base_url() -> str | None:
    return os.getenv("OPENAI_BASE_URL") or None


def get_openai_model() -> str:
    return os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL


def to_openai_tool(function: FunctionDeclaration) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": function.name,
            "description": function.description,
            "parameters": function.parameters,
        },
    }


def build_tools(tools: Sequence[Tool] | None) -> list[dict[str, Any]] | None:
    """Translate function tools to the chat completions format. Other tool types have no equivalent and are dropped."""

    if not tools:
        return None

    return [to_openai_tool(tool.function) for tool in tools if tool.type == "function" and tool.function is not None] or None


def parse_function_calls(message: ChatCompletionMessage) -> list[FunctionCall]:
    function_calls: list[FunctionCall] = []

    for tool_call in message.tool_calls or []:
        if tool_call.type != "function":
            continue

        try:
            args: Any = json.loads(tool_call.function.arguments or "{}")  # pyright: ignore[reportAny]
        except ValueError:
            logger.warning(f"Ignoring call to {tool_call.function.name} with malformed arguments: {tool_call.function.arguments}")
            continue

        function_calls.append(FunctionCall(name=tool_call.function.name, args=args if isinstance(args, dict) else {}))  # pyright: ignore[reportUnknownArgumentType]

    return function_calls


class OpenAIProvider(AIProvider):
    """OpenAI, or any server exposing an OpenAI-compatible chat completions API (Ollama, LM Studio, vLLM, ...)."""

    name: ClassVar[str] = "OpenAI"

    client: AsyncOpenAI

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.default_model = default_model or get_openai_model()

        if client is not None:
            self.client = client
            return

        if not (api_key := api_key or get_openai_api_key()):
            raise MissingCredentialsError(provider=self.name, env_var="OPENAI_API_KEY")

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url or get_openai_base_url())

    def _request_args(self, prompt: str, options: GenerateOptions | None) -> dict[str, Any]:
        options = options or GenerateOptions()

        request_args: dict[str, Any] = {
            "model": self.get_model(options),
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p,
        }

        return {key: value for key, value in request_args.items() if value is not None}  # pyright: ignore[reportAny]

    def _first_message(self, completion: ChatCompletion) -> ChatCompletionMessage:
        if not completion.choices:
            raise EmptyResponseError(provider=self.name)

        return completion.choices[0].message

    @override
    async def generate_content(self, prompt: str, options: GenerateOptions | None = None) -> str:
        request_args: dict[str, Any] = self._request_args(prompt, options)

        if tools := build_tools(options.tools if options else None):
            request_args["tools"] = tools

        completion: ChatCompletion = await self.client.chat.completions.create(**request_args)

        # Tool calls are only acted on by generate_with_functions, here only the text matters
        return self._first_message(completion).content or ""

    @override
    async def generate_content_stream(self, prompt: str, options: GenerateOptions | None = None) -> AsyncIterator[str]:
        request_args: dict[str, Any] = self._request_args(prompt, options)

        if tools := build_tools(options.tools if options else None):
            request_args["tools"] = tools

        stream = await self.client.chat.completions.create(**request_args, stream=True)

        async for chunk in stream:
            if chunk.choices and (content := chunk.choices[0].delta.content):
                yield content

    @override
    async def generate_with_functions(
        self,
        prompt: str,
        functions: Sequence[FunctionDeclaration],
        options: GenerateOptions | None = None,
    ) -> FunctionCallResult:
        request_args: dict[str, Any] = self._request_args(prompt, options)
        request_args.pop("top_p", None)

        completion: ChatCompletion = await self.client.chat.completions.create(
            **request_args,
            tools=[to_openai_tool(function) for function in functions],
            tool_choice="auto",
        )

        message: ChatCompletionMessage = self._first_message(completion)

        return FunctionCallResult(function_calls=parse_function_calls(message), text=message.content or None)
