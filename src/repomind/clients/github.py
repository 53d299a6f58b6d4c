import asyncio
import base64
import os
from collections.abc import Awaitable, Callable, Sequence
from logging import Logger, getLogger
from typing import Any

from githubkit import GitHub as GitHubKit
from githubkit.auth.token import TokenAuthStrategy
from githubkit.exception import GitHubException as GitHubKitGitHubException
from githubkit.exception import GraphQLFailed as GitHubKitGraphQLFailed
from githubkit.exception import RequestFailed as GitHubKitRequestFailed
from githubkit.response import Response as GitHubKitResponse
from githubkit.retry import RetryChainDecision, RetryRateLimit, RetryServerError
from githubkit.versions.v2022_11_28.models import ContentFile as GitHubKitContentFile
from pydantic import BaseModel

from repomind.clients.models.github import (
    GitHubProfile,
    GitHubRepository,
    RepositoryDetails,
    RepositoryFileTree,
    RepositoryReadme,
)
from repomind.errors import RequestError, ResourceNotFoundError, ResourceTypeMismatchError
from repomind.models.graphql.base import BaseGqlQuery
from repomind.models.graphql.queries import GqlRepositoryDetails
from repomind.models.repository.tree import repository_file_tree_from_git_tree

NOT_FOUND_ERROR = 404

DEFAULT_USER_REPOSITORIES_LIMIT = 100

GITHUBKIT_RESPONSE_TYPE = BaseModel | Sequence[BaseModel]


def decode_content(content: str, resource: str = "content") -> str:
    """Decode a base64 file body as UTF-8 text. Binary content raises `ResourceTypeMismatchError`."""

    try:
        return base64.b64decode(content).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ResourceTypeMismatchError(action="Decode content", resource=resource, expected_type="text", actual_type="binary") from e


def get_github_token() -> str | None:
    for env_var in ("GITHUB_TOKEN", "GITHUB_PERSONAL_ACCESS_TOKEN"):
        if token := os.getenv(env_var):
            return token
    return None


def get_githubkit_client(token: str | None = None) -> GitHubKit[Any]:
    """Build a githubkit client that retries server errors and rate limits.

    Without a token the client is anonymous and subject to the unauthenticated rate limit.
    """

    retry_chain = RetryChainDecision(
        RetryServerError(),
        RetryRateLimit(max_retry=3),
    )

    token = token or get_github_token()

    if token is None:
        return GitHubKit(auto_retry=retry_chain)

    return GitHubKit[TokenAuthStrategy](auth=TokenAuthStrategy(token=token), auto_retry=retry_chain)


class GitHubClient:
    """Read-only access to the GitHub data RepoMind needs to answer questions about profiles and repositories."""

    githubkit_client: GitHubKit[Any]
    logger: Logger

    def __init__(self, githubkit_client: GitHubKit[Any] | None = None, logger: Logger | None = None):
        self.githubkit_client = githubkit_client or get_githubkit_client()
        self.logger = logger or getLogger(__name__)

    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T:
        """Perform a request and extract the parsed response.

        Raises:
            ResourceNotFoundError: If GitHub answers with a 404.
            RequestError: If the request fails for any other reason.
        """

        self.logger.debug(f"Performing {action} using {method.__name__} with kwargs {request_args}")

        try:
            response: GitHubKitResponse[T] = await method(**request_args)
        except GitHubKitRequestFailed as e:
            if e.response.status_code == NOT_FOUND_ERROR:
                raise ResourceNotFoundError(action=action, resource=e.request.url.path) from e

            self.logger.exception(f"RequestFailed error performing {action} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e
        except GitHubKitGitHubException as e:
            self.logger.exception(f"Error performing {action} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e

        return response.parsed_data

    async def _perform_graphql_query[T: BaseGqlQuery](self, query_model: type[T], variables: dict[str, Any]) -> T:
        self.logger.debug(f"Executing GraphQL query {query_model.__name__} with variables {variables}")

        try:
            raw_response = await self.githubkit_client.async_graphql(query=query_model.graphql_query(), variables=variables)
        except GitHubKitGraphQLFailed as e:
            messages = ". ".join([error.message for error in e.response.errors])

            if any(error.type == "NOT_FOUND" for error in e.response.errors):
                raise ResourceNotFoundError(action=f"Get {query_model.__name__}", resource=str(variables)) from e

            raise RequestError(action=f"Get {query_model.__name__}", extra_info={"graphql_errors": messages}) from e
        except GitHubKitGitHubException as e:
            raise RequestError(action=f"Get {query_model.__name__}", message=str(e)) from e

        return query_model.model_validate(raw_response)

    async def get_profile(self, username: str) -> GitHubProfile:
        """Get the public profile of a user."""

        user = await self._perform_rest_request(
            action="Get profile",
            method=self.githubkit_client.rest.users.async_get_by_username,
            username=username,
        )

        return GitHubProfile.from_user(user=user)

    async def get_repository(self, owner: str, repo: str) -> GitHubRepository:
        """Get the metadata of a repository."""

        full_repository = await self._perform_rest_request(
            action="Get repository",
            method=self.githubkit_client.rest.repos.async_get,
            owner=owner,
            repo=repo,
        )

        return GitHubRepository.from_full_repository(full_repository=full_repository)

    async def get_repository_tree(self, owner: str, repo: str, branch: str = "main") -> RepositoryFileTree:
        """Get the recursive file tree of a branch with noise paths (VCS, dependencies, build output) filtered out.

        Args:
            owner: The owner of the repository.
            repo: The name of the repository.
            branch: The branch to read the tree from. If the branch cannot be resolved, the name is used as the tree sha.
        """

        tree_sha: str = branch

        try:
            branch_with_protection = await self._perform_rest_request(
                action="Get branch",
                method=self.githubkit_client.rest.repos.async_get_branch,
                owner=owner,
                repo=repo,
                branch=branch,
            )
            tree_sha = branch_with_protection.commit.sha
        except RequestError:
            self.logger.warning(f"Could not fetch branch details for {owner}/{repo}@{branch}, trying with provided name/sha")

        git_tree = await self._perform_rest_request(
            action="Get repository tree",
            method=self.githubkit_client.rest.git.async_get_tree,
            owner=owner,
            repo=repo,
            tree_sha=tree_sha,
            recursive="true",
        )

        return repository_file_tree_from_git_tree(git_tree=git_tree)

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        """Get the decoded content of a file."""

        request_args: dict[str, Any] = {"owner": owner, "repo": repo, "path": path}
        if ref:
            request_args["ref"] = ref

        content = await self._perform_rest_request(
            action="Get file content",
            method=self.githubkit_client.rest.repos.async_get_content,
            **request_args,
        )

        if not isinstance(content, GitHubKitContentFile) or not content.content:
            raise ResourceTypeMismatchError(action="Get file content", resource=path, expected_type="file", actual_type=type(content).__name__)

        return decode_content(content.content, resource=path)

    async def get_profile_readme(self, username: str) -> str | None:
        """Get the profile README (the README of the `username/username` repository), if there is one."""

        try:
            readme = await self._perform_rest_request(
                action="Get profile readme",
                method=self.githubkit_client.rest.repos.async_get_readme,
                owner=username,
                repo=username,
            )
            return decode_content(readme.content, resource=f"{username}/{username}:README")
        except RequestError:
            return None

    async def get_user_repositories(self, username: str, limit: int = DEFAULT_USER_REPOSITORIES_LIMIT) -> list[GitHubRepository]:
        """Get the most recently updated public repositories of a user."""

        try:
            minimal_repositories = await self._perform_rest_request(
                action="List user repositories",
                method=self.githubkit_client.rest.repos.async_list_for_user,
                username=username,
                sort="updated",
                per_page=limit,
            )
        except RequestError as e:
            self.logger.error(f"Failed to fetch repositories for {username}: {e}")
            return []

        return [GitHubRepository.from_minimal_repository(minimal_repository=repository) for repository in minimal_repositories]

    async def get_repositories_readmes(self, username: str) -> list[RepositoryReadme]:
        """Get the READMEs of a user's repositories. Repositories without a README are skipped."""

        repositories: list[GitHubRepository] = await self.get_user_repositories(username=username)

        async def get_readme(repository: GitHubRepository) -> RepositoryReadme | None:
            try:
                readme = await self._perform_rest_request(
                    action="Get repository readme",
                    method=self.githubkit_client.rest.repos.async_get_readme,
                    owner=username,
                    repo=repository.name,
                )
                content = decode_content(readme.content, resource=f"{username}/{repository.name}:README")
            except RequestError:
                return None

            return RepositoryReadme(
                repo=repository.name,
                content=content,
                updated_at=repository.updated_at,
                description=repository.description,
            )

        results: list[RepositoryReadme | None] = await asyncio.gather(*[get_readme(repository) for repository in repositories])

        return [result for result in results if result is not None]

    async def get_repository_details(self, owner: str, repo: str) -> RepositoryDetails | None:
        """Get the language breakdown and the last 20 commits of the default branch."""

        try:
            gql_repository_details: GqlRepositoryDetails = await self._perform_graphql_query(
                query_model=GqlRepositoryDetails,
                variables=GqlRepositoryDetails.to_graphql_query_variables(owner=owner, repo=repo),
            )
        except RequestError as e:
            self.logger.error(f"GraphQL fetch failed for {owner}/{repo}: {e}")
            return None

        return RepositoryDetails.from_gql_repository_details(gql_repository_details=gql_repository_details)
