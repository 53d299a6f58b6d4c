from logging import Logger
from typing import Annotated, Any, Literal

from fastmcp.server import FastMCP
from fastmcp.tools import Tool
from fastmcp.utilities.logging import get_logger
from pydantic import Field

from repomind.diagrams import Diagram, generate_diagram
from repomind.generator import generate_documentation, generate_tests, suggest_refactoring
from repomind.providers.ai.interface import AIProvider
from repomind.servers.shared.annotations import CODE

DOCUMENTATION_KIND = Annotated[Literal["jsdoc", "readme", "comments"], Field(description="The kind of documentation to generate.")]
TEST_FRAMEWORK = Annotated[Literal["jest", "vitest", "pytest"], Field(description="The test framework to write the tests for.")]
DIAGRAM_DESCRIPTION = Annotated[str, Field(description="What the diagram should show, for example the architecture of a service.")]


class DevToolsServer:
    """Code generation tools. Generation failures return a short fallback message instead of an error."""

    ai_provider: AIProvider | None
    logger: Logger

    def __init__(self, ai_provider: AIProvider | None = None, logger: Logger | None = None):
        self.logger = logger or get_logger(name=__name__)
        self.ai_provider = ai_provider

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.generate_documentation))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.generate_tests))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.suggest_refactoring))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.generate_diagram))

        return fastmcp

    async def generate_documentation(self, code: CODE, kind: DOCUMENTATION_KIND = "jsdoc") -> str:
        """Generate documentation for a piece of code."""

        return await generate_documentation(code, kind=kind, ai_provider=self.ai_provider)

    async def generate_tests(self, code: CODE, framework: TEST_FRAMEWORK = "jest") -> str:
        """Generate unit tests for a piece of code."""

        return await generate_tests(code, framework=framework, ai_provider=self.ai_provider)

    async def suggest_refactoring(self, code: CODE) -> str:
        """Suggest a refactoring for a piece of code, with an explanation and the refactored code."""

        return await suggest_refactoring(code, ai_provider=self.ai_provider)

    async def generate_diagram(self, description: DIAGRAM_DESCRIPTION) -> Diagram:
        """Generate a Mermaid diagram. A template diagram is returned when the generated one is not valid Mermaid."""

        return await generate_diagram(description, ai_provider=self.ai_provider)
