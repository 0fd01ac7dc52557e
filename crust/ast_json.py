"""JSON serialization/deserialization for the crust AST.

This module converts between AST dataclasses and plain Python dict/list
structures suitable for JSON encoding. Every node becomes a dict with a
``type`` key naming its class, its fields, and its ``span`` as a
``[start, end]`` pair.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any, Dict

from . import ast
from .lexer import Span

NODE_TYPES: Dict[str, type] = {
    name: obj for name, obj in vars(ast).items()
    if isinstance(obj, type) and issubclass(obj, ast.Node) and obj is not ast.Node
}

# Derived fields rebuilt on construction.
SKIPPED_FIELDS = {'span', 'regex'}


def ast_to_obj(node: Any) -> Any:
    # Primitives
    if node is None or isinstance(node, (bool, int, float, str)):
        return node
    if isinstance(node, (list, tuple)):
        return [ast_to_obj(item) for item in node]
    if isinstance(node, ast.Node):
        obj: Dict[str, Any] = {"type": type(node).__name__}
        for f in fields(node):
            if f.name in SKIPPED_FIELDS:
                continue
            obj[f.name] = ast_to_obj(getattr(node, f.name))
        if node.span is not None:
            obj["span"] = [node.span.start, node.span.end]
        return obj
    raise TypeError(f"cannot serialize {type(node).__name__}")


def ast_from_obj(obj: Any) -> Any:
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, list):
        return [ast_from_obj(item) for item in obj]
    if not isinstance(obj, dict) or "type" not in obj:
        raise ValueError(f"invalid AST object: {obj!r}")
    cls = NODE_TYPES.get(obj["type"])
    if cls is None:
        raise ValueError(f"unknown node type: {obj['type']}")
    kwargs = {}
    for f in fields(cls):
        if f.name in SKIPPED_FIELDS or f.name not in obj:
            continue
        kwargs[f.name] = ast_from_obj(obj[f.name])
    if cls is ast.MapLit:
        kwargs["entries"] = [tuple(entry) for entry in kwargs["entries"]]
    span = obj.get("span")
    if span is not None:
        kwargs["span"] = Span(span[0], span[1])
    return cls(**kwargs)
