"""Document loading and ``$ref`` resolution.

Typical usage::

    from specref.parser import ReferenceResolver

    with ReferenceResolver() as resolver:
        widget = resolver.resolve("spec/root.yaml", "other.yaml#/definitions/Widget")
        expanded = resolver.dereference("spec/other.yaml", widget)

Sub-modules:

* :mod:`~specref.parser.loader` -- I/O layer (URL or file) plus JSON/YAML
  parsing into order-preserving trees.
* :mod:`~specref.parser.resolver` -- reference parsing, fragment walking,
  the per-session cache, and recursive inlining with cycle detection.
"""

from specref.parser.loader import DocumentLoader, ResolvedDocument, is_url, parse_document
from specref.parser.resolver import (
    ReferenceResolver,
    ResolverCache,
    join_locator,
    split_reference,
)

__all__ = [
    "DocumentLoader",
    "ResolvedDocument",
    "ReferenceResolver",
    "ResolverCache",
    "is_url",
    "join_locator",
    "parse_document",
    "split_reference",
]
