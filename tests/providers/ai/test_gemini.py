from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest
from google.genai.types import Candidate, Content, GenerateContentConfig, GenerateContentResponse, Part
from google.genai.types import FunctionCall as GoogleGenaiFunctionCall

from repomind.errors import MissingCredentialsError
from repomind.providers.ai.gemini import GeminiProvider, build_tools
from repomind.providers.ai.interface import FunctionCall, FunctionDeclaration, GenerateOptions, Tool

SELECT_FILES = FunctionDeclaration(
    name="select_files",
    description="Select files.",
    parameters={"type": "object", "properties": {"files": {"type": "array", "items": {"type": "string"}}}},
)


def response(*parts: Part) -> GenerateContentResponse:
    return GenerateContentResponse(candidates=[Candidate(content=Content(role="model", parts=list(parts)))])


def text_response(text: str) -> GenerateContentResponse:
    return response(Part(text=text))


class FakeModels:
    """Stands in for `client.aio.models` and records the keyword arguments of every call."""

    generate_content: AsyncMock
    generate_content_stream: AsyncMock

    def __init__(self, result: GenerateContentResponse | None = None, stream: list[GenerateContentResponse] | None = None):
        self.generate_content = AsyncMock(return_value=result)

        async def chunks() -> AsyncIterator[GenerateContentResponse]:
            for chunk in stream or []:
                yield chunk

        self.generate_content_stream = AsyncMock(side_effect=lambda **_kwargs: chunks())  # pyright: ignore[reportUnknownLambdaType]


def get_provider(models: FakeModels) -> GeminiProvider:
    client: Any = SimpleNamespace(aio=SimpleNamespace(models=models))
    return GeminiProvider(default_model="gemini-2.5-flash", client=client)  # pyright: ignore[reportAny]


def test_missing_api_key(clean_env: pytest.MonkeyPatch):
    with pytest.raises(MissingCredentialsError, match="GEMINI_API_KEY"):
        _ = GeminiProvider()


def test_model_from_environment(clean_env: pytest.MonkeyPatch):
    clean_env.setenv("GEMINI_API_KEY", "test")
    clean_env.setenv("GEMINI_MODEL", "gemini-2.5-pro")

    assert GeminiProvider().default_model == "gemini-2.5-pro"


def test_build_tools_defaults_to_search():
    tools = build_tools(None)

    assert len(tools) == 1
    assert tools[0].google_search is not None


def test_build_tools_functions():
    tools = build_tools([Tool(type="function", function=SELECT_FILES), Tool(type="googleSearch")])

    assert tools[0].function_declarations is not None
    assert tools[0].function_declarations[0].name == "select_files"
    assert tools[1].google_search is not None


async def test_generate_content():
    models = FakeModels(result=text_response("Hello there"))

    assert await get_provider(models).generate_content("Hi", GenerateOptions(temperature=0.3, max_tokens=100)) == "Hello there"

    kwargs = models.generate_content.call_args.kwargs
    config: GenerateContentConfig = kwargs["config"]

    assert kwargs["model"] == "gemini-2.5-flash"
    assert kwargs["contents"] == "Hi"
    assert config.temperature == 0.3
    assert config.max_output_tokens == 100
    assert config.tools is not None


async def test_generate_content_stream():
    models = FakeModels(stream=[text_response("Hel"), text_response("lo")])

    chunks = [chunk async for chunk in get_provider(models).generate_content_stream("Hi", GenerateOptions(model="gemini-2.5-pro"))]

    assert chunks == ["Hel", "lo"]
    assert models.generate_content_stream.call_args.kwargs["model"] == "gemini-2.5-pro"


async def test_generate_with_functions():
    models = FakeModels(result=response(Part(function_call=GoogleGenaiFunctionCall(name="select_files", args={"files": ["src/app.py"]}))))

    result = await get_provider(models).generate_with_functions("Which files?", [SELECT_FILES])

    assert result.function_calls == [FunctionCall(name="select_files", args={"files": ["src/app.py"]})]
    assert result.text is None

    config: GenerateContentConfig = models.generate_content.call_args.kwargs["config"]

    assert config.tools is not None
    assert config.tools[0].function_declarations[0].name == "select_files"  # pyright: ignore[reportOptionalSubscript, reportAttributeAccessIssue]


async def test_generate_with_functions_text_only():
    models = FakeModels(result=text_response("No files needed."))

    result = await get_provider(models).generate_with_functions("Hi", [SELECT_FILES])

    assert result.function_calls == []
    assert result.text == "No files needed."
