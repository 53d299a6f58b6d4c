from logging import Logger
from typing import Annotated, Any

from fastmcp.server import FastMCP
from fastmcp.tools import Tool
from fastmcp.utilities.logging import get_logger
from pydantic import Field

from repomind.analytics import Analytics
from repomind.assistant import ProfileAnswer, RepositoryAnswer, RepositoryAssistant
from repomind.servers.shared.annotations import OWNER, QUESTION, REPO, USERNAME, VISITOR_ID

QUERY = Annotated[str, Field(description="The question or task to select files for.")]


class AssistantServer:
    """Tools that answer questions with the AI provider, and the usage statistics of those answers."""

    assistant: RepositoryAssistant
    analytics: Analytics
    logger: Logger

    def __init__(self, assistant: RepositoryAssistant, logger: Logger | None = None):
        self.logger = logger or get_logger(name=__name__)
        self.assistant = assistant
        self.analytics = assistant.analytics

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ask_repository))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.ask_profile))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.select_files))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.get_analytics))

        return fastmcp

    async def ask_repository(self, owner: OWNER, repo: REPO, question: QUESTION, visitor_id: VISITOR_ID = None) -> RepositoryAnswer:
        """Answer a question about a repository. The most relevant files are selected and read before answering."""

        return await self.assistant.ask(owner=owner, repo=repo, question=question, visitor_id=visitor_id)

    async def ask_profile(self, username: USERNAME, question: QUESTION, visitor_id: VISITOR_ID = None) -> ProfileAnswer:
        """Answer a question about a developer from their profile and the READMEs of their repositories."""

        return await self.assistant.ask_profile(username=username, question=question, visitor_id=visitor_id)

    async def select_files(self, owner: OWNER, repo: REPO, query: QUERY) -> list[str]:
        """Select the files of a repository that are most relevant to a question."""

        return await self.assistant.select_files(owner=owner, repo=repo, query=query)

    async def get_analytics(self) -> dict[str, Any]:
        """Get usage statistics: visitor and query totals, active visitors, device and country breakdowns."""

        snapshot = await self.analytics.get_analytics_data()

        return snapshot.to_json_dict()
