import re
from logging import Logger, getLogger
from textwrap import dedent
from typing import Literal

import httpx
from anthropic import AnthropicError
from google.genai.errors import APIError as GoogleGenaiAPIError
from openai import OpenAIError

from repomind.errors import RepoMindError
from repomind.providers.ai.factory import get_ai_provider
from repomind.providers.ai.interface import AIProvider

logger: Logger = getLogger(__name__)

# Failures of any backend, including a provider that cannot be constructed
GENERATION_ERRORS: tuple[type[Exception], ...] = (RepoMindError, httpx.HTTPError, OpenAIError, AnthropicError, GoogleGenaiAPIError)

DOCUMENTATION_FALLBACK = "Failed to generate documentation."
TESTS_FALLBACK = "// Failed to generate tests."
REFACTORING_FALLBACK = "Failed to generate suggestions."

type DocumentationKind = Literal["jsdoc", "readme", "comments"]
type TestFramework = Literal["jest", "vitest", "pytest"]

OPENING_FENCE = re.compile(r"```\w*\n")
CLOSING_FENCE = re.compile(r"```\Z")


def strip_code_fences(text: str) -> str:
    return CLOSING_FENCE.sub("", OPENING_FENCE.sub("", text))


async def generate_documentation(code: str, kind: DocumentationKind = "jsdoc", ai_provider: AIProvider | None = None) -> str:
    prompt = dedent(f"""
        Generate {kind.upper()} documentation for the following code.
        Return ONLY the documentation code block, no markdown wrappers if possible, or just the content.

        Code:
        """) + code

    try:
        result: str = await (ai_provider or get_ai_provider()).generate_content(prompt)
    except GENERATION_ERRORS:
        logger.exception("Documentation generation failed")
        return DOCUMENTATION_FALLBACK

    return strip_code_fences(result)


async def generate_tests(code: str, framework: TestFramework = "jest", ai_provider: AIProvider | None = None) -> str:
    prompt = dedent(f"""
        Generate {framework} unit tests for the following code.
        Include imports and mock setups if necessary.
        Return ONLY the test code.

        Code:
        """) + code

    try:
        result: str = await (ai_provider or get_ai_provider()).generate_content(prompt)
    except GENERATION_ERRORS:
        logger.exception("Test generation failed")
        return TESTS_FALLBACK

    return strip_code_fences(result)


async def suggest_refactoring(code: str, ai_provider: AIProvider | None = None) -> str:
    """Suggest a refactoring as Markdown: an explanation followed by the refactored code in a fenced block."""

    prompt = dedent("""
        Suggest a refactoring for this code to improve readability and performance.

        IMPORTANT FORMATTING RULES:
        1. Use standard Markdown.
        2. Provide explanations as normal text.
        3. Use code blocks ONLY for the actual code.
        4. DO NOT wrap the entire response in a single code block.

        Structure:
        ### Explanation
        (Your explanation here)

        ### Refactored Code
        ```(language)
        (Your code here)
        ```

        Code:
        """) + code

    try:
        return await (ai_provider or get_ai_provider()).generate_content(prompt)
    except GENERATION_ERRORS:
        logger.exception("Refactoring suggestion failed")
        return REFACTORING_FALLBACK
