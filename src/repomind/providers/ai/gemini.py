import os
from collections.abc import AsyncIterator, Sequence
from logging import Logger, getLogger
from typing import ClassVar, override

from google.genai import Client as GoogleGenaiClient
from google.genai.types import FunctionDeclaration as GoogleGenaiFunctionDeclaration
from google.genai.types import GenerateContentConfig, GenerateContentResponse, GoogleSearch
from google.genai.types import Tool as GoogleGenaiTool

from repomind.errors import MissingCredentialsError
from repomind.providers.ai.interface import AIProvider, FunctionCall, FunctionCallResult, FunctionDeclaration, GenerateOptions, Tool

logger: Logger = getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


def get_gemini_api_key() -> str | None:
    return os.getenv("GEMINI_API_KEY")


def get_gemini_model() -> str:
    return os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL


def to_google_genai_function_declaration(function: FunctionDeclaration) -> GoogleGenaiFunctionDeclaration:
    return GoogleGenaiFunctionDeclaration(
        name=function.name,
        description=function.description,
        parameters_json_schema=function.parameters,
    )


def build_tools(tools: Sequence[Tool] | None) -> list[GoogleGenaiTool]:
    """Translate tools to Gemini tools. Without explicit tools, Google Search grounding is enabled."""

    if not tools:
        return [GoogleGenaiTool(google_search=GoogleSearch())]

    google_genai_tools: list[GoogleGenaiTool] = []

    for tool in tools:
        if tool.type == "googleSearch":
            google_genai_tools.append(GoogleGenaiTool(google_search=GoogleSearch()))
        elif tool.function is not None:
            google_genai_tools.append(GoogleGenaiTool(function_declarations=[to_google_genai_function_declaration(tool.function)]))

    return google_genai_tools


def build_config(options: GenerateOptions | None, tools: list[GoogleGenaiTool]) -> GenerateContentConfig:
    options = options or GenerateOptions()

    return GenerateContentConfig(
        temperature=options.temperature,
        max_output_tokens=options.max_tokens,
        top_p=options.top_p,
        tools=tools,
    )


class GeminiProvider(AIProvider):
    name: ClassVar[str] = "Gemini"

    client: GoogleGenaiClient

    def __init__(self, api_key: str | None = None, default_model: str | None = None, client: GoogleGenaiClient | None = None):
        self.default_model = default_model or get_gemini_model()

        if client is not None:
            self.client = client
            return

        if not (api_key := api_key or get_gemini_api_key()):
            raise MissingCredentialsError(provider=self.name, env_var="GEMINI_API_KEY")

        self.client = GoogleGenaiClient(api_key=api_key)

    @override
    async def generate_content(self, prompt: str, options: GenerateOptions | None = None) -> str:
        response: GenerateContentResponse = await self.client.aio.models.generate_content(
            model=self.get_model(options),
            contents=prompt,
            config=build_config(options, tools=build_tools(options.tools if options else None)),
        )

        return response.text or ""

    @override
    async def generate_content_stream(self, prompt: str, options: GenerateOptions | None = None) -> AsyncIterator[str]:
        stream = await self.client.aio.models.generate_content_stream(
            model=self.get_model(options),
            contents=prompt,
            config=build_config(options, tools=build_tools(options.tools if options else None)),
        )

        async for chunk in stream:
            if text := chunk.text:
                yield text

    @override
    async def generate_with_functions(
        self,
        prompt: str,
        functions: Sequence[FunctionDeclaration],
        options: GenerateOptions | None = None,
    ) -> FunctionCallResult:
        tools: list[GoogleGenaiTool] = [
            GoogleGenaiTool(function_declarations=[to_google_genai_function_declaration(function) for function in functions])
        ]

        response: GenerateContentResponse = await self.client.aio.models.generate_content(
            model=self.get_model(options),
            contents=prompt,
            config=build_config(options, tools=tools),
        )

        function_calls: list[FunctionCall] = [
            FunctionCall(name=function_call.name, args=function_call.args or {})
            for function_call in response.function_calls or []
            if function_call.name
        ]

        return FunctionCallResult(function_calls=function_calls, text=response.text)
