"""Key-set checks for mapping nodes.

A schema-validation layer describes each object type by three sets: the keys
it requires, the literal keys it allows, and regular-expression patterns for
open-ended keys (``^x-`` vendor extensions, ``^/`` path items and so on).
The functions here compare a mapping node against those sets and report the
differences as data.

All checks are pure and total. Calling them on a non-mapping node reports
nothing, which matches what the tree accessors in :mod:`specref.tree` return
for such input; callers that care tell the two cases apart with
:func:`~specref.tree.unpack_map`.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Sequence

from specref.exceptions import InvalidUsageError
from specref.models import KeyReport
from specref.tree import Node, has_key


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise InvalidUsageError(f"Invalid key pattern '{pattern}': {exc}") from exc


def pattern_matches(pattern: str, value: str) -> bool:
    """Return True if *pattern* matches anywhere in *value*.

    Matching is unanchored (``re.search``); anchor the pattern with ``^`` and
    ``$`` for a whole-string match.

    Raises:
        InvalidUsageError: If *pattern* is not a valid regular expression.
    """
    return _compile(pattern).search(value) is not None


def missing_keys(node: Node, required: Sequence[str]) -> list[str]:
    """Return the entries of *required* that *node* lacks, in *required* order.

    A non-mapping *node* yields ``[]``.
    """
    if not isinstance(node, dict):
        return []
    return [key for key in required if not has_key(node, key)]


def invalid_keys(
    node: Node,
    allowed: Iterable[str] = (),
    patterns: Sequence[str] = (),
) -> list[str]:
    """Return the keys of *node* that are neither allowed nor pattern-matched.

    Args:
        node: The mapping to check. Anything else yields ``[]``.
        allowed: Literal key names that are always accepted.
        patterns: Regular expressions; a key matching any of them is accepted.

    Returns:
        Offending keys in the mapping's own order.

    Raises:
        InvalidUsageError: If a pattern is not a valid regular expression.
    """
    if not isinstance(node, dict):
        return []
    allowed_set = set(allowed)
    invalid: list[str] = []
    for key in node:
        name = str(key)
        if name in allowed_set:
            continue
        if any(pattern_matches(pattern, name) for pattern in patterns):
            continue
        invalid.append(name)
    return invalid


def check_keys(
    node: Node,
    required: Sequence[str] = (),
    allowed: Iterable[str] = (),
    patterns: Sequence[str] = (),
    check_invalid: bool = True,
) -> KeyReport:
    """Run both checks and bundle the results in a :class:`~specref.models.KeyReport`.

    With *check_invalid* False only required keys are checked and
    ``invalid`` is always empty.

    Example::

        report = check_keys(
            info_node,
            required=["title", "version"],
            allowed=["title", "version", "description"],
            patterns=["^x-"],
        )
        for line in report.messages():
            warning(line)
    """
    return KeyReport(
        missing=missing_keys(node, required),
        invalid=invalid_keys(node, allowed, patterns) if check_invalid else [],
    )
