from collections.abc import Sequence
from textwrap import dedent
from typing import Any, Self

import yaml
from pydantic import BaseModel, Field


class PromptSection(BaseModel):
    """A markdown section of a prompt: a heading followed by a body."""

    title: str = Field(description="The heading of the section.")
    level: int = Field(default=1, description="The heading level, rendered as that many `#`.")
    body: str = Field(description="The text below the heading.")

    @property
    def heading(self) -> str:
        return "#" * self.level + " " + self.title

    def render_text(self) -> str:
        return f"{self.heading}\n{self.body}"


WHO_YOU_ARE = PromptSection(
    title="Who you are",
    body="""
You are RepoMind, an assistant that answers questions about GitHub repositories and developer profiles. You read the
files and READMEs you are given and explain how the code works, where things live, and how the pieces fit together.
""",
)

GROUNDED = PromptSection(
    title="Stay Grounded",
    body="""
Only state what the provided files, READMEs and metadata support. When you reference code, name the file it comes from.
If the provided context does not answer the question, say so instead of guessing.
""",
)

RESPONSE_FORMAT = PromptSection(
    title="Response Format",
    body="""
Your response is shown directly to the user. Answer in markdown, start with the answer itself, and use fenced code
blocks with a language tag for code. Use Mermaid code blocks when a diagram helps.
""",
)

SYSTEM_PROMPT_SECTIONS = [WHO_YOU_ARE, GROUNDED, RESPONSE_FORMAT]

FILE_SELECTION_INSTRUCTIONS = """
Select the files from the repository tree that are most relevant to answering the user's question. Call the
`select_files` function with their paths exactly as they appear in the tree. Prefer entry points, configuration and
the files named in the question. Select at most {limit} files.
"""


def fenced(content: str, language: str = "") -> str:
    if not content.endswith("\n"):
        content += "\n"

    return f"```{language}\n{content}```"


class PromptBuilder(BaseModel):
    """Assembles a prompt from sections. Every `add_*` method returns the builder so calls can be chained."""

    sections: list[PromptSection] = Field(default_factory=list)

    def _add(self, title: str, body: str, level: int) -> Self:
        self.sections.append(PromptSection(title=title, level=level, body=body))
        return self

    def add_text_section(self, title: str, text: str | Sequence[str], level: int = 1) -> Self:
        paragraphs: Sequence[str] = [text] if isinstance(text, str) else text

        return self._add(title, "\n".join(dedent(paragraph) for paragraph in paragraphs), level)

    def add_code_section(self, title: str, code: str, language: str = "", level: int = 1) -> Self:
        return self._add(title, fenced(code, language), level)

    def add_yaml_section(self, title: str, obj: dict[str, Any] | BaseModel | list[Any], level: int = 1) -> Self:
        data: Any = obj.model_dump(mode="json") if isinstance(obj, BaseModel) else obj  # pyright: ignore[reportAny]

        return self._add(title, fenced(yaml.safe_dump(data, sort_keys=False), "yaml"), level)

    def render_text(self) -> str:
        return "\n\n".join(section.render_text() for section in self.sections)


class SystemPromptBuilder(PromptBuilder):
    """A prompt builder that starts with the RepoMind persona, grounding and response format sections."""

    sections: list[PromptSection] = Field(default_factory=lambda: list(SYSTEM_PROMPT_SECTIONS))
