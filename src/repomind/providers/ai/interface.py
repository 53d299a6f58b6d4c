from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field


class FunctionDeclaration(BaseModel):
    """A function the model may call, described with a JSON schema for its arguments."""

    name: str = Field(description="The name of the function.")
    description: str = Field(description="What the function does and when to call it.")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="The JSON schema of the function arguments.",
    )


class Tool(BaseModel):
    type: Literal["function", "googleSearch"]
    function: FunctionDeclaration | None = None


class GenerateOptions(BaseModel):
    """Per-request overrides. Unset fields fall back to the defaults of the active provider."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    tools: list[Tool] | None = None


class FunctionCall(BaseModel):
    name: str = Field(description="The name of the function the model called.")
    args: dict[str, Any] = Field(default_factory=dict, description="The parsed arguments of the call.")


class FunctionCallResult(BaseModel):
    function_calls: list[FunctionCall] = Field(default_factory=list)
    text: str | None = None


class AIProvider(ABC):
    """A text generation backend.

    Every backend accepts the same prompts, options and function declarations and normalises its native tool-calling
    format into `FunctionCallResult`.
    """

    name: ClassVar[str]

    default_model: str

    def get_model(self, options: GenerateOptions | None) -> str:
        if options and options.model:
            return options.model

        return self.default_model

    @abstractmethod
    async def generate_content(self, prompt: str, options: GenerateOptions | None = None) -> str:
        """Generate a complete response to a prompt."""

    @abstractmethod
    def generate_content_stream(self, prompt: str, options: GenerateOptions | None = None) -> AsyncIterator[str]:
        """Stream a response to a prompt as text chunks, in the order the backend produces them.

        The iterator is lazy and cannot be restarted. Stop iterating to cancel.
        """

    @abstractmethod
    async def generate_with_functions(
        self,
        prompt: str,
        functions: Sequence[FunctionDeclaration],
        options: GenerateOptions | None = None,
    ) -> FunctionCallResult:
        """Generate a response that may call the declared functions."""
