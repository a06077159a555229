"""Order-preserving document trees and their accessors.

A parsed document is a plain Python tree:

* **Mapping** -- a ``dict`` whose insertion order is the source key order.
  Keys are unique within one mapping (duplicates are rejected by the
  parser in :mod:`specref.parser.loader`).
* **Sequence** -- a ``list`` of nodes.
* **Scalar** -- ``str``, ``int``, ``float``, ``bool`` or ``None`` (plus any
  other leaf the YAML safe loader produces, such as dates).

Fragments handed out by :class:`~specref.parser.resolver.ReferenceResolver`
are references into cached documents, so callers must treat every node as
read-only shared data.

The accessors below are total: given something that is not a mapping they
return an empty or false result instead of raising.
"""

from __future__ import annotations

from typing import Any, Optional, Union

Scalar = Union[str, int, float, bool, None]
Node = Any
"""Any node of a parsed document: ``dict``, ``list`` or a scalar."""


def is_mapping(node: Node) -> bool:
    return isinstance(node, dict)


def is_sequence(node: Node) -> bool:
    return isinstance(node, list)


def is_scalar(node: Node) -> bool:
    return not isinstance(node, (dict, list))


def unpack_map(node: Node) -> tuple[dict[str, Node], bool]:
    """Return ``(node, True)`` if *node* is a mapping, else ``({}, False)``."""
    if isinstance(node, dict):
        return node, True
    return {}, False


def keys_of(node: Node) -> list[str]:
    """Return the keys of a mapping sorted lexicographically.

    The sort makes diagnostic reports deterministic; it is not the source
    order. Non-mapping input yields an empty list.
    """
    if not isinstance(node, dict):
        return []
    return sorted(str(key) for key in node)


def has_key(node: Node, key: str) -> bool:
    return isinstance(node, dict) and key in node


def value_for(node: Node, key: str) -> Optional[Node]:
    """Return the value stored under *key*, or ``None`` when absent.

    A key explicitly mapped to ``null`` also yields ``None``; use
    :func:`has_key` to tell the two apart.
    """
    if not isinstance(node, dict):
        return None
    return node.get(key)


def string_list(node: Node) -> list[str]:
    """Return the string items of a sequence, in order, skipping everything else."""
    if not isinstance(node, list):
        return []
    return [item for item in node if isinstance(item, str)]


def plural_properties(count: int) -> str:
    return "property" if count == 1 else "properties"


def describe(node: Node, indent: str = "") -> str:
    """Render *node* as indented text for diagnostics.

    Mapping entries print as ``key:`` followed by the value one level
    (two spaces) deeper; sequence entries print as ``index:`` followed by
    the item; scalars print as their literal value. Empty containers
    contribute no lines.

    The walk uses an explicit stack, so arbitrarily deep trees never hit the
    interpreter recursion limit.

    Example::

        >>> print(describe({"info": {"title": "Pets"}, "tags": ["a"]}), end="")
        info:
          title:
            Pets
        tags:
          0:
            a
    """
    lines: list[str] = []
    # Items are ("line", text) or ("node", node, indent); popped LIFO.
    stack: list[tuple[Any, ...]] = [("node", node, indent)]
    while stack:
        item = stack.pop()
        if item[0] == "line":
            lines.append(item[1])
            continue

        _, current, pad = item
        if isinstance(current, dict):
            entries = [(f"{pad}{key}:", value) for key, value in current.items()]
        elif isinstance(current, list):
            entries = [(f"{pad}{i}:", value) for i, value in enumerate(current)]
        else:
            lines.append(f"{pad}{_literal(current)}")
            continue

        for label, value in reversed(entries):
            stack.append(("node", value, pad + "  "))
            stack.append(("line", label))

    return "".join(line + "\n" for line in lines)


def _literal(value: Scalar) -> str:
    """Render a scalar the way it would appear in YAML."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
