"""
Graph document schema and the sanitize/parse/validate step for model output.

The model is asked for bare JSON but regularly wraps it in markdown fences, so
fences are always stripped before parsing. Parsing is strict and nothing is
repaired: output either validates into a GraphDocument or is rejected.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)

from echo_mindmap.errors import MalformedResponseError, SchemaError

# Triple backticks plus an optional language tag, e.g. ```json
FENCE_PATTERN = re.compile(r"```[A-Za-z0-9_+-]*")


# --- SCHEMA ---
class NodeData(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    label: StrictStr


class Position(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    x: Union[StrictInt, StrictFloat]
    y: Union[StrictInt, StrictFloat]


class Node(BaseModel):
    # Extra keys (style, className...) are kept for the renderer
    model_config = ConfigDict(extra="allow", frozen=True)

    id: StrictStr
    type: Optional[StrictStr] = None
    data: NodeData
    position: Position


class Edge(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: StrictStr
    source: StrictStr
    target: StrictStr
    animated: Optional[StrictBool] = None


class GraphDocument(BaseModel):
    """
    The mind map handed to the rendering layer.

    Invariants: at least one node, unique node ids, and every edge endpoint
    names an existing node.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    nodes: List[Node]
    edges: List[Edge]

    @model_validator(mode="after")
    def check_graph_invariants(self):
        if not self.nodes:
            raise ValueError("graph has no nodes")

        node_ids = set()
        for node in self.nodes:
            if node.id in node_ids:
                raise ValueError(f"duplicate node id '{node.id}'")
            node_ids.add(node.id)

        for edge in self.edges:
            if edge.source not in node_ids:
                raise ValueError(f"edge '{edge.id}' source '{edge.source}' is not a node")
            if edge.target not in node_ids:
                raise ValueError(f"edge '{edge.id}' target '{edge.target}' is not a node")
        return self

    def to_dict(self) -> dict:
        """JSON-ready form with unset optional fields left out."""
        return self.model_dump(exclude_none=True)


# --- TAGGED VALIDATION RESULT ---
@dataclass(frozen=True)
class Valid:
    document: GraphDocument
    ok = True


@dataclass(frozen=True)
class Invalid:
    reason: str
    ok = False


ValidationResult = Union[Valid, Invalid]


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        message = item.get("msg", "invalid")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def _reject_constant(name: str):
    # NaN / Infinity are not JSON
    raise ValueError(f"non-standard JSON constant {name}")


# --- OPERATIONS ---
def sanitize(text: str) -> str:
    """Removes every code fence marker, then trims surrounding whitespace."""
    return FENCE_PATTERN.sub("", text).strip()


def validate_graph(data: Any) -> ValidationResult:
    """Checks parsed JSON against the graph schema without coercing anything."""
    if not isinstance(data, dict):
        return Invalid(f"expected a JSON object, got {type(data).__name__}")
    try:
        return Valid(GraphDocument.model_validate(data))
    except ValidationError as e:
        return Invalid(_describe(e))


def sanitize_and_validate(raw_text: str) -> GraphDocument:
    """
    Turns raw model output into a GraphDocument.

    Raises:
        MalformedResponseError: the sanitized text is not valid JSON.
        SchemaError: it parses but violates the graph invariants.
    """
    clean = sanitize(raw_text)
    try:
        data = json.loads(clean, parse_constant=_reject_constant)
    except ValueError as e:
        raise MalformedResponseError(
            "Model response is not valid JSON",
            {"error": str(e), "length": len(clean)},
        ) from e

    result = validate_graph(data)
    if isinstance(result, Invalid):
        raise SchemaError("Model response is not a valid graph", {"reason": result.reason})
    return result.document
