from logging import Logger
from typing import Annotated, Any

from fastmcp.server import FastMCP
from fastmcp.tools import Tool
from fastmcp.tools.tool_transform import ArgTransform, TransformedTool
from fastmcp.utilities.logging import get_logger
from pydantic import Field

from repomind.assistant import RepositoryAssistant
from repomind.clients.models.github import GitHubRepository, RepositoryFileTree
from repomind.servers.shared.annotations import OWNER, OWNER_ARG_TRANSFORM, REPO, REPO_ARG_TRANSFORM, USERNAME_ARG_TRANSFORM

BRANCH = Annotated[str | None, Field(description="The branch to read. Defaults to the default branch of the repository.")]


def description(description: str, /) -> ArgTransform:
    return ArgTransform(description=description)


class RepositoryServer:
    """Read-only GitHub tools. Profiles, repositories and trees are served through the response cache."""

    assistant: RepositoryAssistant
    logger: Logger

    def __init__(self, assistant: RepositoryAssistant, logger: Logger | None = None):
        self.logger = logger or get_logger(name=__name__)
        self.assistant = assistant

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        for tool in self.passthrough_tools().values():
            _ = fastmcp.add_tool(tool=tool)

        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.get_repository_tree))

        return fastmcp

    def passthrough_tools(self) -> dict[str, TransformedTool]:
        owner_repo_args = {
            "owner": OWNER_ARG_TRANSFORM,
            "repo": REPO_ARG_TRANSFORM,
        }

        get_profile_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.assistant.get_profile),
            description="Get the public GitHub profile of a user.",
            transform_args={"username": USERNAME_ARG_TRANSFORM},
        )

        get_repository_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.assistant.get_repository),
            description="Get high-level information about a GitHub repository like the description, stars, language and default branch.",
            transform_args={**owner_repo_args},
        )

        get_file_content_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.assistant.github_client.get_file_content),
            description="Get the content of a file in a repository.",
            transform_args={
                **owner_repo_args,
                "path": description("The path of the file in the repository."),
                "ref": description("The branch, tag or commit to read the file from. Defaults to the default branch."),
            },
        )

        get_repository_details_tool = TransformedTool.from_tool(
            tool=Tool.from_function(fn=self.assistant.github_client.get_repository_details),
            description="Get the language breakdown and the 20 most recent commits of a repository.",
            transform_args={**owner_repo_args},
        )

        return {
            tool.name: tool
            for tool in [
                get_profile_tool,
                get_repository_tool,
                get_file_content_tool,
                get_repository_details_tool,
            ]
        }

    async def get_repository_tree(self, owner: OWNER, repo: REPO, branch: BRANCH = None) -> RepositoryFileTree:
        """Get the file tree of a repository. Version control, dependency and build output paths are listed as hidden files."""

        if branch is None:
            repository: GitHubRepository = await self.assistant.get_repository(owner, repo)
            branch = repository.default_branch

        return await self.assistant.get_file_tree(owner, repo, branch)
