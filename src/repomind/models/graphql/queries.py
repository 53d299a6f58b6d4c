from datetime import datetime
from textwrap import dedent
from typing import Any, override

from pydantic import BaseModel, Field
from pydantic.aliases import AliasChoices

from repomind.models.graphql.base import BaseGqlQuery, Edges


class GqlLanguage(BaseModel):
    name: str
    color: str | None = None


class GqlLanguageEdge(BaseModel):
    size: int
    node: GqlLanguage


class GqlLanguages(BaseModel):
    total_size: int = Field(validation_alias=AliasChoices("totalSize", "total_size"))
    edges: list[GqlLanguageEdge]


class GqlUser(BaseModel):
    login: str


class GqlCommitAuthor(BaseModel):
    name: str | None = None
    avatar_url: str | None = Field(default=None, validation_alias=AliasChoices("avatarUrl", "avatar_url"))
    user: GqlUser | None = None


class GqlCommit(BaseModel):
    message: str
    committed_date: datetime = Field(validation_alias=AliasChoices("committedDate", "committed_date"))
    author: GqlCommitAuthor


class GqlCommitTarget(BaseModel):
    history: Edges[GqlCommit] | None = None


class GqlDefaultBranchRef(BaseModel):
    target: GqlCommitTarget


class GqlRepositoryDetailsRepository(BaseModel):
    languages: GqlLanguages
    default_branch_ref: GqlDefaultBranchRef | None = Field(
        default=None, validation_alias=AliasChoices("defaultBranchRef", "default_branch_ref")
    )

    @property
    def commits(self) -> list[GqlCommit]:
        if self.default_branch_ref is None or self.default_branch_ref.target.history is None:
            return []

        return [edge.node for edge in self.default_branch_ref.target.history.edges]


class GqlRepositoryDetails(BaseGqlQuery):
    repository: GqlRepositoryDetailsRepository

    @staticmethod
    @override
    def graphql_query() -> str:
        return dedent("""
            query RepoDetails($owner: String!, $name: String!) {
              repository(owner: $owner, name: $name) {
                languages(first: 10, orderBy: {field: SIZE, direction: DESC}) {
                  totalSize
                  edges {
                    size
                    node {
                      name
                      color
                    }
                  }
                }
                defaultBranchRef {
                  target {
                    ... on Commit {
                      history(first: 20) {
                        edges {
                          node {
                            message
                            committedDate
                            author {
                              name
                              avatarUrl
                              user {
                                login
                              }
                            }
                          }
                        }
                      }
                    }
                  }
                }
              }
            }
        """)

    @staticmethod
    @override
    def to_graphql_query_variables(owner: str, repo: str) -> dict[str, Any]:  # pyright: ignore[reportIncompatibleMethodOverride]
        return {"owner": owner, "name": repo}
