import asyncio
import posixpath
from collections.abc import AsyncIterator
from logging import Logger, getLogger
from typing import Any

from pydantic import BaseModel, Field

from repomind.analytics import Analytics, VisitorMetadata
from repomind.caching import ResponseCache
from repomind.clients.github import GitHubClient
from repomind.clients.models.github import GitHubProfile, GitHubRepository, RepositoryFileTree, RepositoryReadme
from repomind.errors import RequestError
from repomind.models.repository.tree import render_tree_for_prompt
from repomind.prompts import FILE_SELECTION_INSTRUCTIONS, PromptBuilder, SystemPromptBuilder
from repomind.providers.ai.factory import get_ai_provider
from repomind.providers.ai.interface import AIProvider, FunctionCallResult, FunctionDeclaration, GenerateOptions

DEFAULT_FILE_SELECTION_LIMIT = 10
DEFAULT_PROFILE_README_LIMIT = 20
DEFAULT_FILE_TRUNCATE_CHARACTERS = 30000
DEFAULT_README_TRUNCATE_CHARACTERS = 4000

SELECT_FILES_FUNCTION = FunctionDeclaration(
    name="select_files",
    description="Select the repository files needed to answer the question.",
    parameters={
        "type": "object",
        "properties": {
            "files": {
                "type": "array",
                "items": {"type": "string"},
                "description": "The paths of the selected files, exactly as they appear in the repository tree.",
            },
        },
        "required": ["files"],
    },
)


class RepositoryFile(BaseModel):
    path: str = Field(description="The path of the file in the repository.")
    content: str = Field(description="The content of the file, possibly truncated.")


class RepositoryAnswer(BaseModel):
    answer: str = Field(description="The answer to the question, in markdown.")
    files: list[str] = Field(description="The paths of the files the answer is based on.")


class ProfileAnswer(BaseModel):
    answer: str = Field(description="The answer to the question, in markdown.")
    repositories: list[str] = Field(description="The repositories whose READMEs the answer is based on.")


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text

    return text[:limit] + f"\n... (truncated {len(text) - limit} characters)"


def fallback_selection(file_tree: RepositoryFileTree) -> list[str]:
    """The READMEs at the root of the repository, used when the model selects nothing usable."""

    return [path for path in file_tree.file_paths if "/" not in path and posixpath.basename(path).lower().startswith("readme")]


def files_from_function_calls(result: FunctionCallResult, file_tree: RepositoryFileTree, limit: int) -> list[str]:
    """Collect the selected paths that exist in the tree, in the order the model gave them, without duplicates."""

    known_paths: set[str] = set(file_tree.file_paths)
    selected: list[str] = []

    for function_call in result.function_calls:
        if function_call.name != SELECT_FILES_FUNCTION.name:
            continue

        files: Any = function_call.args.get("files")  # pyright: ignore[reportAny]
        if not isinstance(files, list):
            continue

        for path in files:  # pyright: ignore[reportUnknownVariableType]
            if isinstance(path, str) and path in known_paths and path not in selected:
                selected.append(path)

    return selected[:limit]


class RepositoryAssistant:
    """Answers questions about repositories and profiles.

    GitHub responses and file selections go through the response cache, file contents are cached by blob sha, and
    every answered question is recorded as a `query` analytics event when a visitor id is given.
    """

    github_client: GitHubClient
    response_cache: ResponseCache
    analytics: Analytics
    logger: Logger

    file_selection_limit: int

    _ai_provider: AIProvider | None

    def __init__(
        self,
        github_client: GitHubClient | None = None,
        response_cache: ResponseCache | None = None,
        analytics: Analytics | None = None,
        ai_provider: AIProvider | None = None,
        logger: Logger | None = None,
        file_selection_limit: int = DEFAULT_FILE_SELECTION_LIMIT,
    ):
        self.logger = logger or getLogger(name=__name__)
        self.github_client = github_client or GitHubClient(logger=self.logger)
        self.response_cache = response_cache or ResponseCache()
        self.analytics = analytics or Analytics()
        self.file_selection_limit = file_selection_limit
        self._ai_provider = ai_provider

    @property
    def ai_provider(self) -> AIProvider:
        return self._ai_provider or get_ai_provider()

    async def get_repository(self, owner: str, repo: str) -> GitHubRepository:
        if cached := await self.response_cache.get_cached_repo_metadata(owner, repo):
            return cached

        repository: GitHubRepository = await self.github_client.get_repository(owner=owner, repo=repo)

        await self.response_cache.cache_repo_metadata(owner, repo, repository)

        return repository

    async def get_profile(self, username: str) -> GitHubProfile:
        if cached := await self.response_cache.get_cached_profile_data(username):
            return cached

        profile: GitHubProfile = await self.github_client.get_profile(username=username)

        await self.response_cache.cache_profile_data(username, profile)

        return profile

    async def get_file_tree(self, owner: str, repo: str, branch: str) -> RepositoryFileTree:
        if cached := await self.response_cache.get_cached_file_tree(owner, repo, branch):
            return cached

        file_tree: RepositoryFileTree = await self.github_client.get_repository_tree(owner=owner, repo=repo, branch=branch)

        await self.response_cache.cache_file_tree(owner, repo, branch, file_tree)

        return file_tree

    async def load_file(self, owner: str, repo: str, path: str, file_tree: RepositoryFileTree) -> RepositoryFile | None:
        """Load a file through the sha-keyed file cache. Files that cannot be fetched are skipped with a warning."""

        sha: str | None = file_tree.get_sha(path)

        if sha and (cached := await self.response_cache.get_cached_file(owner, repo, path, sha)) is not None:
            return RepositoryFile(path=path, content=cached)

        try:
            content: str = await self.github_client.get_file_content(owner=owner, repo=repo, path=path)
        except RequestError as e:
            self.logger.warning(f"Skipping {owner}/{repo}:{path}: {e}")
            return None

        if sha:
            await self.response_cache.cache_file(owner, repo, path, sha, content)

        return RepositoryFile(path=path, content=content)

    async def select_files(self, owner: str, repo: str, query: str, file_tree: RepositoryFileTree | None = None) -> list[str]:
        """Pick the files relevant to a query.

        A previous selection for the same normalized query is reused. Otherwise the model is shown the filtered tree
        and asked to call `select_files`; paths that are not in the tree are dropped. An empty selection falls back
        to the root READMEs and is not cached.
        """

        if cached := await self.response_cache.get_cached_query_selection(owner, repo, query):
            self.logger.debug(f"Using cached file selection for {owner}/{repo}: {query}")
            return cached

        if file_tree is None:
            repository: GitHubRepository = await self.get_repository(owner, repo)
            file_tree = await self.get_file_tree(owner, repo, repository.default_branch)

        prompt: str = (
            PromptBuilder()
            .add_text_section(title="Instructions", text=FILE_SELECTION_INSTRUCTIONS.format(limit=self.file_selection_limit))
            .add_code_section(title=f"Repository Tree of {owner}/{repo}", code=render_tree_for_prompt(file_tree))
            .add_text_section(title="Question", text=query)
            .render_text()
        )

        result: FunctionCallResult = await self.ai_provider.generate_with_functions(
            prompt, [SELECT_FILES_FUNCTION], GenerateOptions(temperature=0.0)
        )

        if selected := files_from_function_calls(result, file_tree, self.file_selection_limit):
            await self.response_cache.cache_query_selection(owner, repo, query, selected)
            return selected

        self.logger.warning(f"No usable file selection for {owner}/{repo}, falling back to the READMEs")

        return fallback_selection(file_tree)

    async def _build_repository_prompt(self, owner: str, repo: str, question: str) -> tuple[str, list[str]]:
        repository: GitHubRepository = await self.get_repository(owner, repo)
        file_tree: RepositoryFileTree = await self.get_file_tree(owner, repo, repository.default_branch)

        selected: list[str] = await self.select_files(owner, repo, question, file_tree=file_tree)

        loaded: list[RepositoryFile | None] = await asyncio.gather(
            *[self.load_file(owner, repo, path, file_tree) for path in selected]
        )
        files: list[RepositoryFile] = [file for file in loaded if file is not None]

        prompt_builder: PromptBuilder = SystemPromptBuilder().add_yaml_section(title="Repository", obj=repository)

        for file in files:
            _ = prompt_builder.add_code_section(
                title=f"File: {file.path}", code=truncate(file.content, DEFAULT_FILE_TRUNCATE_CHARACTERS), level=2
            )

        _ = prompt_builder.add_text_section(title="Question", text=question)

        return prompt_builder.render_text(), [file.path for file in files]

    async def ask(
        self,
        owner: str,
        repo: str,
        question: str,
        visitor_id: str | None = None,
        metadata: VisitorMetadata | None = None,
    ) -> RepositoryAnswer:
        """Answer a question about a repository from the files selected for it."""

        prompt, files = await self._build_repository_prompt(owner, repo, question)

        self.logger.info(f"Answering a question about {owner}/{repo} from {len(files)} files")

        answer: str = await self.ai_provider.generate_content(prompt)

        if visitor_id:
            await self.analytics.track_event(visitor_id, "query", metadata)

        return RepositoryAnswer(answer=answer, files=files)

    async def ask_stream(
        self,
        owner: str,
        repo: str,
        question: str,
        visitor_id: str | None = None,
        metadata: VisitorMetadata | None = None,
    ) -> AsyncIterator[str]:
        """Like `ask`, but yields the answer as it is generated. The query is recorded once the stream completes."""

        prompt, files = await self._build_repository_prompt(owner, repo, question)

        self.logger.info(f"Streaming an answer about {owner}/{repo} from {len(files)} files")

        async for chunk in self.ai_provider.generate_content_stream(prompt):
            yield chunk

        if visitor_id:
            await self.analytics.track_event(visitor_id, "query", metadata)

    async def ask_profile(
        self,
        username: str,
        question: str,
        visitor_id: str | None = None,
        metadata: VisitorMetadata | None = None,
    ) -> ProfileAnswer:
        """Answer a question about a developer from their profile, profile README and repository READMEs."""

        profile, profile_readme, readmes = await asyncio.gather(
            self.get_profile(username),
            self.github_client.get_profile_readme(username=username),
            self.github_client.get_repositories_readmes(username=username),
        )

        readmes = readmes[:DEFAULT_PROFILE_README_LIMIT]

        prompt_builder: PromptBuilder = SystemPromptBuilder().add_yaml_section(title="Profile", obj=profile)

        if profile_readme:
            _ = prompt_builder.add_code_section(
                title="Profile README", code=truncate(profile_readme, DEFAULT_README_TRUNCATE_CHARACTERS), language="markdown"
            )

        readme: RepositoryReadme
        for readme in readmes:
            _ = prompt_builder.add_text_section(
                title=f"Repository: {readme.repo}", text=readme.description or "No description.", level=2
            ).add_code_section(
                title=f"README of {readme.repo}",
                code=truncate(readme.content, DEFAULT_README_TRUNCATE_CHARACTERS),
                language="markdown",
                level=3,
            )

        _ = prompt_builder.add_text_section(title="Question", text=question)

        answer: str = await self.ai_provider.generate_content(prompt_builder.render_text())

        if visitor_id:
            await self.analytics.track_event(visitor_id, "query", metadata)

        return ProfileAnswer(answer=answer, repositories=[readme.repo for readme in readmes])
