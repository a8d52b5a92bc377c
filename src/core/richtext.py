"""
Rich-text document validation for note and card bodies.

Bodies are TipTap-style JSON documents. The engine stores them as opaque
text once they pass a recursive structural check against a small
whitelist of node and mark types.
"""

from __future__ import annotations

import json
from typing import Any

from src.core.errors import InvalidArgumentError, ParseError

VALID_NODE_TYPES = frozenset(
    {
        # Document structure
        "doc",
        "paragraph",
        "heading",
        "codeBlock",
        "blockquote",
        "listItem",
        "bulletList",
        "orderedList",
        "text",
        "hardBreak",
        # Task lists
        "taskList",
        "taskItem",
        # Common extensions
        "image",
        "horizontalRule",
    }
)

VALID_MARK_TYPES = frozenset({"bold", "italic", "strike", "code", "link"})

BLOCK_TYPES = frozenset(
    {
        "paragraph",
        "heading",
        "codeBlock",
        "blockquote",
        "listItem",
        "bulletList",
        "orderedList",
        "taskList",
        "taskItem",
    }
)

# Placeholder bodies written by older clients and by auto-created cards
EMPTY_BODIES = frozenset({"", "{}"})


def load_document(content: str) -> dict[str, Any]:
    """Decode a JSON body, raising ParseError on malformed input."""
    if not isinstance(content, str):
        raise ParseError(f"rich-text body must be a JSON string, got {type(content).__name__}")
    try:
        doc = json.loads(content)
    except (TypeError, ValueError) as e:
        raise ParseError(f"invalid rich-text JSON: {e}") from e
    if not isinstance(doc, dict):
        raise ParseError("rich-text document must be a JSON object")
    return doc


def validate_json(content: str | None) -> None:
    """
    Validate a serialized document.

    Empty bodies are accepted (no content yet).

    Raises:
        ParseError: Body is not JSON
        InvalidArgumentError: Structure violates the whitelist
    """
    if content is None or (isinstance(content, str) and content.strip() in EMPTY_BODIES):
        return
    validate_document(load_document(content))


def validate_document(doc: dict[str, Any] | None) -> None:
    if doc is None:
        raise InvalidArgumentError("rich-text document node is required")
    if doc.get("type") != "doc":
        raise InvalidArgumentError(f"root type must be 'doc', got '{doc.get('type')}'")

    content = doc.get("content") or []
    if not isinstance(content, list):
        raise InvalidArgumentError("content must be an array")
    for i, node in enumerate(content):
        _validate_node(node, f"content[{i}]")


def _validate_node(node: Any, path: str) -> None:
    if not isinstance(node, dict):
        raise InvalidArgumentError(f"{path}: node must be an object")

    node_type = node.get("type")
    if node_type not in VALID_NODE_TYPES:
        raise InvalidArgumentError(f"{path}: unknown node type '{node_type}'")

    children = node.get("content") or []
    if not isinstance(children, list):
        raise InvalidArgumentError(f"{path}: content must be an array")

    if node_type == "text" and not node.get("text") and not children:
        raise InvalidArgumentError(f"{path}: text node without text")
    if not isinstance(node.get("text", ""), str):
        raise InvalidArgumentError(f"{path}: text must be a string")

    marks = node.get("marks") or []
    if not isinstance(marks, list):
        raise InvalidArgumentError(f"{path}: marks must be an array")
    for mark in marks:
        mark_type = mark.get("type") if isinstance(mark, dict) else None
        if mark_type not in VALID_MARK_TYPES:
            raise InvalidArgumentError(f"{path}: unknown mark type '{mark_type}'")
        attrs = mark.get("attrs")
        if attrs is not None and not isinstance(attrs, dict):
            raise InvalidArgumentError(f"{path}: mark attrs must be an object")
        if mark_type == "link" and attrs is not None and "href" not in attrs:
            raise InvalidArgumentError(f"{path}: link mark must have href attribute")

    for i, child in enumerate(children):
        _validate_node(child, f"{path}.child[{i}]")


def is_empty(content: str | None) -> bool:
    """True when the body holds no text (or is not a valid document)."""
    try:
        return not extract_text(content).strip()
    except InvalidArgumentError:
        return True


def extract_text(content: str | None) -> str:
    """Flatten a body to plain text; block nodes end with a newline."""
    if content is None or (isinstance(content, str) and content.strip() in EMPTY_BODIES):
        return ""
    doc = load_document(content)
    validate_document(doc)
    return "".join(_text_of(node) for node in doc.get("content") or [])


def _text_of(node: dict[str, Any]) -> str:
    node_type = node.get("type")
    if node_type == "text":
        return node.get("text", "")
    if node_type == "hardBreak":
        return "\n"

    result = "".join(_text_of(child) for child in node.get("content") or [])
    if node_type in BLOCK_TYPES and result:
        result += "\n"
    return result


def empty_document() -> str:
    return json.dumps({"type": "doc", "content": [{"type": "paragraph", "content": []}]})


def document_from_text(text: str) -> str:
    """Wrap plain text in a single-paragraph document."""
    if not text:
        return empty_document()
    return json.dumps(
        {
            "type": "doc",
            "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
        }
    )
