from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class BaseGqlQuery(BaseModel, ABC):  # pyright: ignore[reportUnsafeMultipleInheritance]
    @staticmethod
    @abstractmethod
    def graphql_query() -> str: ...

    @staticmethod
    @abstractmethod
    def to_graphql_query_variables(**kwargs: Any) -> dict[str, Any]: ...  # pyright: ignore[reportAny]


class Edge[T](BaseModel):
    node: T


class Edges[T](BaseModel):
    edges: list[Edge[T]]
