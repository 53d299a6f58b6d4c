from datetime import datetime
from typing import Literal, Self

from githubkit.versions.v2022_11_28.models import FullRepository as GitHubKitFullRepository
from githubkit.versions.v2022_11_28.models import GitTreePropTreeItems as GitHubKitGitTreeItem
from githubkit.versions.v2022_11_28.models import MinimalRepository as GitHubKitMinimalRepository
from githubkit.versions.v2022_11_28.models import PrivateUser as GitHubKitPrivateUser
from githubkit.versions.v2022_11_28.models import PublicUser as GitHubKitPublicUser
from pydantic import BaseModel, ConfigDict, Field

from repomind.models.graphql.queries import GqlRepositoryDetails


class GitHubProfile(BaseModel):
    """A GitHub user profile."""

    model_config = ConfigDict(frozen=True)

    login: str = Field(description="The login of the user.")
    avatar_url: str = Field(description="The URL of the user's avatar.")
    html_url: str = Field(description="The URL of the user's profile page.")
    name: str | None = Field(default=None, description="The display name of the user.")
    bio: str | None = Field(default=None, description="The bio of the user.")
    public_repos: int = Field(description="The number of public repositories the user owns.")
    followers: int = Field(description="The number of followers.")
    following: int = Field(description="The number of users the user follows.")
    created_at: datetime = Field(description="The date and time the account was created.")

    @classmethod
    def from_user(cls, user: GitHubKitPublicUser | GitHubKitPrivateUser) -> Self:
        return cls(
            login=user.login,
            avatar_url=user.avatar_url,
            html_url=user.html_url,
            name=user.name,
            bio=user.bio,
            public_repos=user.public_repos,
            followers=user.followers,
            following=user.following,
            created_at=user.created_at,
        )


class GitHubRepository(BaseModel):
    """A GitHub repository."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="The name of the repository.")
    full_name: str = Field(description="The owner and name of the repository.")
    description: str | None = Field(default=None, description="The description of the repository.")
    html_url: str = Field(description="The URL of the repository page.")
    stars: int = Field(description="The number of stars the repository has.")
    language: str | None = Field(default=None, description="The primary language of the repository.")
    forks: int = Field(description="The number of forks.")
    open_issues: int = Field(description="The number of open issues.")
    default_branch: str = Field(description="The default branch of the repository.")
    owner_login: str = Field(description="The login of the repository owner.")
    updated_at: datetime | None = Field(default=None, description="The date and time the repository was updated.")

    @classmethod
    def from_full_repository(cls, full_repository: GitHubKitFullRepository) -> Self:
        return cls(
            name=full_repository.name,
            full_name=full_repository.full_name,
            description=full_repository.description,
            html_url=full_repository.html_url,
            stars=full_repository.stargazers_count,
            language=full_repository.language,
            forks=full_repository.forks_count,
            open_issues=full_repository.open_issues_count,
            default_branch=full_repository.default_branch,
            owner_login=full_repository.owner.login,
            updated_at=full_repository.updated_at,
        )

    @classmethod
    def from_minimal_repository(cls, minimal_repository: GitHubKitMinimalRepository) -> Self:
        return cls(
            name=minimal_repository.name,
            full_name=minimal_repository.full_name,
            description=minimal_repository.description,
            html_url=minimal_repository.html_url,
            stars=minimal_repository.stargazers_count or 0,
            language=minimal_repository.language or None,
            forks=minimal_repository.forks_count or 0,
            open_issues=minimal_repository.open_issues_count or 0,
            default_branch=minimal_repository.default_branch or "main",
            owner_login=minimal_repository.owner.login,
            updated_at=minimal_repository.updated_at or None,
        )


class FileNode(BaseModel):
    """An entry of a git tree."""

    path: str
    mode: str
    type: Literal["blob", "tree", "commit"]
    sha: str
    size: int | None = None
    url: str | None = None

    @classmethod
    def from_git_tree_item(cls, tree_item: GitHubKitGitTreeItem) -> Self:
        return cls(
            path=tree_item.path,
            mode=tree_item.mode,
            type=tree_item.type,  # pyright: ignore[reportArgumentType]
            sha=tree_item.sha,
            size=tree_item.size or None,
            url=tree_item.url or None,
        )


class HiddenFile(BaseModel):
    path: str = Field(description="The path that was removed from the tree.")
    reason: str = Field(description="Why the path was removed.")


class RepositoryFileTree(BaseModel):
    """The file tree of a repository with noise paths removed."""

    tree: list[FileNode] = Field(description="The remaining entries of the tree.")
    hidden_files: list[HiddenFile] = Field(default_factory=list, description="The entries that were filtered out.")

    @property
    def file_paths(self) -> list[str]:
        return [node.path for node in self.tree if node.type == "blob"]

    def get_sha(self, path: str) -> str | None:
        for node in self.tree:
            if node.path == path:
                return node.sha
        return None


class RepositoryReadme(BaseModel):
    repo: str = Field(description="The name of the repository.")
    content: str = Field(description="The decoded README.")
    updated_at: datetime | None = Field(default=None, description="When the repository was last updated.")
    description: str | None = Field(default=None, description="The description of the repository.")


class LanguageShare(BaseModel):
    name: str
    color: str | None = None
    size: int
    percentage: str = Field(description="The share of the repository in this language, formatted to one decimal.")


class CommitAuthor(BaseModel):
    name: str | None = None
    login: str | None = None
    avatar: str | None = None


class CommitSummary(BaseModel):
    message: str
    date: datetime
    author: CommitAuthor


class RepositoryDetails(BaseModel):
    """Language breakdown and recent history of a repository."""

    languages: list[LanguageShare]
    commits: list[CommitSummary]
    total_size: int

    @classmethod
    def from_gql_repository_details(cls, gql_repository_details: GqlRepositoryDetails) -> Self:
        repository = gql_repository_details.repository
        total_size: int = repository.languages.total_size

        languages: list[LanguageShare] = [
            LanguageShare(
                name=edge.node.name,
                color=edge.node.color,
                size=edge.size,
                percentage=f"{(edge.size / total_size) * 100:.1f}" if total_size else "0.0",
            )
            for edge in repository.languages.edges
        ]

        commits: list[CommitSummary] = [
            CommitSummary(
                message=commit.message,
                date=commit.committed_date,
                author=CommitAuthor(
                    name=commit.author.name,
                    login=commit.author.user.login if commit.author.user else None,
                    avatar=commit.author.avatar_url,
                ),
            )
            for commit in repository.commits
        ]

        return cls(languages=languages, commits=commits, total_size=total_size)
