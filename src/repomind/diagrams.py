import re
from collections.abc import Sequence
from logging import Logger, getLogger
from textwrap import dedent

from pydantic import BaseModel, Field

from repomind.generator import GENERATION_ERRORS, strip_code_fences
from repomind.providers.ai.factory import get_ai_provider
from repomind.providers.ai.interface import AIProvider, GenerateOptions

logger: Logger = getLogger(__name__)

DIAGRAM_TYPES = ["graph", "flowchart", "sequenceDiagram", "classDiagram", "stateDiagram", "erDiagram", "gantt"]

DIAGRAM_TYPE_PATTERN = re.compile("(" + "|".join(DIAGRAM_TYPES) + ")")

BRACKET_PAIRS: list[tuple[str, str, str]] = [
    ("[", "]", "Unbalanced square brackets"),
    ("{", "}", "Unbalanced curly braces"),
    ("(", ")", "Unbalanced parentheses"),
]

BACKTICK_LABEL = re.compile(r"`([^`]+)`")
QUOTED_LABEL = re.compile(r'(\w+)\["((?:[^"]|"(?!\]))*)"]')
UNQUOTED_LABEL = re.compile(r'(\w+)\[([^"\]]+)\]')
SPECIAL_LABEL_CHARACTERS = re.compile(r"[(),;:]")


class DiagramComponent(BaseModel):
    name: str
    deps: list[str] = Field(default_factory=list)


class MermaidValidation(BaseModel):
    valid: bool
    error: str | None = None


class Diagram(BaseModel):
    code: str = Field(description="The Mermaid source of the diagram.")
    diagram_type: str = Field(description="The Mermaid diagram type, or `unknown`.")
    is_fallback: bool = Field(description="Whether a template was used because the generated diagram was unusable.")


def _node_id(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", name)


# Fallback templates


def basic_flow(components: Sequence[str]) -> str:
    labels: list[str] = [component.replace('"', '\\"') for component in components]
    nodes: list[str] = [f'  {index}["{label}"]' for index, label in enumerate(labels)]
    edges: list[str] = [f"  {index} --> {index + 1}" for index in range(len(components) - 1)]

    return "\ngraph TD\n" + "\n".join(nodes) + "\n" + "\n".join(edges) + "\n  "


def layered_architecture(layers: Sequence[str]) -> str:
    frontend, backend, data = (list(layers) + ["", "", ""])[:3]

    return dedent(f"""
        graph TB
          subgraph "Frontend"
            UI["{frontend or "User Interface"}"]
          end
          subgraph "Backend"
            API["{backend or "API Layer"}"]
          end
          subgraph "Data"
            DB["{data or "Database"}"]
          end
          UI --> API
          API --> DB
        """)


def component_diagram(components: Sequence[DiagramComponent]) -> str:
    nodes: list[str] = [f'  {_node_id(component.name)}["{component.name}"]' for component in components]
    edges: list[str] = [f"  {_node_id(component.name)} --> {_node_id(dep)}" for component in components for dep in component.deps]

    return "\ngraph LR\n" + "\n".join(nodes) + "\n" + "\n".join(edges) + "\n  "


def service_architecture() -> str:
    return dedent("""
        graph TB
          Client["Client/Browser"]
          LB["Load Balancer"]
          App1["App Server 1"]
          App2["App Server 2"]
          Cache["Redis Cache"]
          DB["Database"]

          Client --> LB
          LB --> App1
          LB --> App2
          App1 --> Cache
          App2 --> Cache
          App1 --> DB
          App2 --> DB
        """)


def get_fallback_template(context: str | None = None) -> str:
    """Pick a template from keywords in the context: layers, services or components. Defaults to a basic flow."""

    if not context:
        return basic_flow(["Start", "Process", "End"])

    lower: str = context.lower()

    if "layer" in lower or "tier" in lower:
        return layered_architecture(["Frontend", "Backend", "Database"])

    if "service" in lower:
        return service_architecture()

    if "component" in lower or "dependency" in lower:
        return component_diagram(
            [
                DiagramComponent(name="Component A", deps=["Component B"]),
                DiagramComponent(name="Component B", deps=["Component C"]),
                DiagramComponent(name="Component C"),
            ]
        )

    return basic_flow(["Start", "Process", "End"])


# Validation and repair


def validate_mermaid_syntax(code: str) -> MermaidValidation:
    trimmed: str = code.strip()

    if not trimmed:
        return MermaidValidation(valid=False, error="Empty diagram code")

    if not any(diagram_type in trimmed for diagram_type in DIAGRAM_TYPES):
        return MermaidValidation(valid=False, error="Invalid or missing diagram type")

    for opening, closing, error in BRACKET_PAIRS:
        if trimmed.count(opening) != trimmed.count(closing):
            return MermaidValidation(valid=False, error=error)

    return MermaidValidation(valid=True)


def _single_quote_inner_quotes(match: re.Match[str]) -> str:
    node_id, text = match.group(1), match.group(2)
    text = text.replace('"', "'")
    return f'{node_id}["{text}"]'


def _quote_label(match: re.Match[str]) -> str:
    node_id, text = match.group(1), match.group(2)

    if " " in text or SPECIAL_LABEL_CHARACTERS.search(text):
        return f'{node_id}["{text.strip()}"]'

    return match.group(0)


def sanitize_mermaid_code(code: str) -> str:
    """Repair common mistakes in generated Mermaid: backtick labels, nested double quotes and unquoted labels with spaces."""

    sanitized: str = BACKTICK_LABEL.sub(r'"\1"', code).strip().replace("\r\n", "\n")

    sanitized = QUOTED_LABEL.sub(_single_quote_inner_quotes, sanitized)

    return UNQUOTED_LABEL.sub(_quote_label, sanitized)


def extract_diagram_type(code: str) -> str:
    if match := DIAGRAM_TYPE_PATTERN.search(code):
        return match.group(1)

    return "unknown"


async def generate_diagram(description: str, ai_provider: AIProvider | None = None) -> Diagram:
    """Generate a Mermaid diagram from a description, falling back to a template when generation fails or the result
    does not validate."""

    prompt = dedent("""
        Create a Mermaid diagram for the following description.
        Return ONLY the Mermaid code, starting with the diagram type (for example `graph TD`).
        Quote every node label that contains spaces or punctuation.

        Description:
        """) + description

    try:
        generated: str = await (ai_provider or get_ai_provider()).generate_content(prompt, GenerateOptions(temperature=0.2))
    except GENERATION_ERRORS:
        logger.exception("Diagram generation failed, using a fallback template")
        generated = ""

    code: str = sanitize_mermaid_code(strip_code_fences(generated))

    if not (validation := validate_mermaid_syntax(code)).valid:
        if generated:
            logger.warning(f"Generated diagram is invalid ({validation.error}), using a fallback template")

        code = get_fallback_template(description)

        return Diagram(code=code, diagram_type=extract_diagram_type(code), is_fallback=True)

    return Diagram(code=code, diagram_type=extract_diagram_type(code), is_fallback=False)
