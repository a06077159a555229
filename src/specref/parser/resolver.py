"""Resolve ``$ref`` reference strings to the fragments they designate.

A reference has the form ``[file-part][#fragment]``:

* ``other.yaml#/definitions/Widget`` -- a fragment of another document,
  located relative to the directory of the base document.
* ``#/definitions/Widget`` -- a fragment of the base document itself.
* ``https://example.com/common.yaml`` -- a whole remote document.

The fragment is a ``/``-separated key path into nested mappings, with
RFC 6901 escaping (``~1`` for ``/``, ``~0`` for ``~``) and percent-encoding
decoded per segment, as for a JSON Pointer carried in a URI fragment.
Sequences are not indexed: a path that reaches a list before it is
consumed fails.

:class:`ReferenceResolver` memoises every located fragment in a
:class:`ResolverCache` keyed by ``(base locator, reference string)``, so the
same reference is never loaded or walked twice within one resolver session.
The cache is safe to share between threads; concurrent requests for the
same key block on a per-key lock while the first one loads.

:meth:`ReferenceResolver.dereference` builds on :meth:`~ReferenceResolver.resolve`
to inline every nested ``{"$ref": ...}`` of a subtree, across documents,
with cycle detection.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Optional
from urllib.parse import unquote, urljoin

from specref.exceptions import (
    CyclicReferenceError,
    ReferenceResolutionError,
    SpecrefError,
)
from specref.models import LoaderConfig
from specref.parser.loader import DocumentLoader, ResolvedDocument, is_url
from specref.tree import Node

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


# ------------------------------------------------------------------ #
# Reference syntax
# ------------------------------------------------------------------ #


def split_reference(ref: str) -> tuple[str, Optional[str]]:
    """Split *ref* on its first ``#`` into ``(file_part, fragment)``.

    The fragment is ``None`` when *ref* contains no ``#`` at all, and ``""``
    for a trailing ``#``.
    """
    file_part, sep, fragment = ref.partition("#")
    return file_part, (fragment if sep else None)


def join_locator(base: str, file_part: str) -> str:
    """Locate *file_part* relative to the document at *base*.

    An empty *file_part* names the base document itself. URLs and absolute
    paths pass through unchanged; relative parts are joined onto the
    directory of *base* (``urljoin`` for URL bases).
    """
    if not file_part:
        return base
    if is_url(file_part) or os.path.isabs(file_part):
        return file_part
    if is_url(base):
        return urljoin(base, file_part)
    return os.path.normpath(os.path.join(os.path.dirname(base), file_part))


def fragment_segments(fragment: str) -> list[str]:
    """Split a fragment into decoded key segments.

    ``""`` and ``"/"`` designate the whole document and yield no segments.
    Percent-escapes are decoded before the ``~1``/``~0`` escapes, so a key
    that literally contains ``%`` is written with ``%25`` (``a%2541``
    addresses the key ``a%41``).
    """
    if fragment in ("", "/"):
        return []
    if fragment.startswith("/"):
        fragment = fragment[1:]
    return [
        unquote(segment).replace("~1", "/").replace("~0", "~")
        for segment in fragment.split("/")
    ]


def walk_fragment(tree: Node, fragment: str, ref: str, base: str) -> Node:
    """Descend from *tree* along the keys named by *fragment*.

    Raises:
        ReferenceResolutionError: If a segment names a missing key, or the
            current node is not a mapping while segments remain. The error's
            ``segment`` attribute holds the failing segment.
    """
    current = tree
    walked: list[str] = []
    for segment in fragment_segments(fragment):
        if not isinstance(current, dict):
            kind = "sequence" if isinstance(current, list) else "scalar"
            raise ReferenceResolutionError(
                f"Cannot descend into {kind} at '/{'/'.join(walked)}' "
                f"looking for segment '{segment}'",
                ref=ref,
                base=base,
                segment=segment,
            )
        if segment not in current:
            raise ReferenceResolutionError(
                f"Key '{segment}' not found at '/{'/'.join(walked)}'",
                ref=ref,
                base=base,
                segment=segment,
            )
        current = current[segment]
        walked.append(segment)
    return current


# ------------------------------------------------------------------ #
# Cache
# ------------------------------------------------------------------ #


class ResolverCache:
    """Thread-safe memo table from ``(base, ref)`` to resolved subtree.

    Entries are never evicted or invalidated; documents are assumed not to
    change for the lifetime of the cache. Failed computations are not
    stored, so a later call retries them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, Node] = {}
        self._key_locks: dict[CacheKey, threading.Lock] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get_or_compute(self, key: CacheKey, compute: Callable[[], Node]) -> Node:
        """Return the cached value for *key*, computing it at most once.

        Callers racing on the same key wait for the first one's result;
        callers on different keys do not block each other while computing.
        """
        with self._lock:
            if key in self._entries:
                self.hits += 1
                return self._entries[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._entries:
                    self.hits += 1
                    return self._entries[key]
            try:
                value = compute()
                with self._lock:
                    self._entries[key] = value
                    self.misses += 1
            finally:
                with self._lock:
                    if self._key_locks.get(key) is key_lock:
                        del self._key_locks[key]
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()
            self.hits = 0
            self.misses = 0


# ------------------------------------------------------------------ #
# Resolver
# ------------------------------------------------------------------ #


class ReferenceResolver:
    """Resolve reference strings against base documents, with memoisation.

    One resolver is one resolution session: its cache lives exactly as long
    as the resolver. Returned fragments are the cached objects themselves,
    not copies, and must be treated as read-only.

    Args:
        loader: Document loader to use. When omitted, a loader is created
            from *config* and closed together with the resolver.
        cache: Optional cache to share between resolvers.
        config: Loader settings used when *loader* is omitted.

    Example::

        with ReferenceResolver(config=LoaderConfig(timeout=10)) as resolver:
            widget = resolver.resolve("spec/root.yaml", "other.yaml#/definitions/Widget")
            same = resolver.resolve("spec/root.yaml", "other.yaml#/definitions/Widget")
            assert widget is same
    """

    def __init__(
        self,
        loader: Optional[DocumentLoader] = None,
        cache: Optional[ResolverCache] = None,
        config: Optional[LoaderConfig] = None,
    ) -> None:
        self._loader = loader or DocumentLoader(config)
        self._owns_loader = loader is None
        self._cache = cache if cache is not None else ResolverCache()
        self._loads = 0
        self._loads_lock = threading.Lock()

    @property
    def cache(self) -> ResolverCache:
        return self._cache

    def __enter__(self) -> ReferenceResolver:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        logger.debug("resolver stats: %s", self.stats())
        if self._owns_loader:
            self._loader.close()

    def resolve(self, base: str, ref: str) -> Node:
        """Return the subtree that *ref* designates, relative to *base*.

        Args:
            base: Locator of the document containing the reference.
            ref: Reference string, ``[file-part][#fragment]``.

        Returns:
            The located node, shared with the cache.

        Raises:
            ReferenceResolutionError: If the fragment path cannot be walked.
            DocumentIOError: If the target file cannot be read.
            NetworkError: If the target URL cannot be fetched.
            DocumentParseError: If the target document does not parse.
        """
        return self._cache.get_or_compute(
            (base, ref), lambda: self._resolve_uncached(base, ref)
        )

    def _resolve_uncached(self, base: str, ref: str) -> Node:
        file_part, fragment = split_reference(ref)
        locator = join_locator(base, file_part)
        logger.debug("resolving %s from %s", ref, base)
        # TODO: layer a document cache keyed by ResolvedDocument.identity under
        # the reference cache so that two refs naming one file share a load.
        document = self._load(locator, ref, base)
        if fragment is None:
            return document.tree
        return walk_fragment(document.tree, fragment, ref=ref, base=base)

    def _load(self, locator: str, ref: str, base: str) -> ResolvedDocument:
        try:
            document = self._loader.load(locator)
        except SpecrefError as exc:
            exc.add_context(f"while resolving '{ref}' from '{base}'")
            raise
        with self._loads_lock:
            self._loads += 1
        return document

    def dereference(self, base: str, node: Node, keep_cycles: bool = False) -> Node:
        """Return a copy of *node* with every ``{"$ref": ...}`` mapping inlined.

        Each reference is resolved relative to the document that contains
        it, so refs inside an external document follow that document's
        location. Sibling keys of ``$ref`` are dropped. The cached trees are
        never modified; containers along the way are rebuilt.

        Args:
            base: Locator of the document that *node* belongs to.
            node: The subtree to expand.
            keep_cycles: When True, a reference that would re-enter one
                already being expanded is left as its ``{"$ref": ...}``
                mapping instead of raising.

        Raises:
            CyclicReferenceError: If the reference graph loops back on
                itself and *keep_cycles* is False.
        """
        return self._inline(base, node, keep_cycles)

    def resolve_deep(self, base: str, ref: str, keep_cycles: bool = False) -> Node:
        """Resolve *ref* and inline every reference inside the result."""
        return self._inline(base, {"$ref": ref}, keep_cycles)

    def _inline(self, base: str, node: Node, keep_cycles: bool) -> Node:
        """Copy *node* with references inlined, using an explicit work stack.

        Each task is ``(base, node, chain, parent, slot)``: the copy of *node*
        is stored at ``parent[slot]``. ``chain`` holds the canonical
        ``locator#fragment`` links being inlined on the way down to *node*.
        """
        result: list[Node] = [None]
        stack: list[tuple[str, Node, tuple[str, ...], Any, Any]] = [
            (base, node, (), result, 0)
        ]
        while stack:
            base, current, chain, parent, slot = stack.pop()

            leaf = False
            while isinstance(current, dict) and isinstance(current.get("$ref"), str):
                ref = current["$ref"]
                file_part, fragment = split_reference(ref)
                locator = join_locator(base, file_part)
                link = f"{_canonical(locator)}#{fragment or ''}"
                if link in chain:
                    if not keep_cycles:
                        raise CyclicReferenceError(ref, base, [*chain, link])
                    leaf = True
                    break
                current = self.resolve(base, ref)
                base, chain = locator, chain + (link,)

            if leaf or not isinstance(current, (dict, list)):
                parent[slot] = current
            elif isinstance(current, dict):
                copy: dict[str, Node] = dict.fromkeys(current)
                parent[slot] = copy
                for key in reversed(list(current)):
                    stack.append((base, current[key], chain, copy, key))
            else:
                items: list[Node] = [None] * len(current)
                parent[slot] = items
                for index in range(len(current) - 1, -1, -1):
                    stack.append((base, current[index], chain, items, index))
        return result[0]

    def stats(self) -> dict[str, int]:
        """Return cache entry, hit and miss counts and the number of document loads."""
        with self._loads_lock:
            loads = self._loads
        return {
            "entries": len(self._cache),
            "hits": self._cache.hits,
            "misses": self._cache.misses,
            "loads": loads,
        }


def _canonical(locator: str) -> str:
    if is_url(locator):
        return locator
    return os.path.normpath(os.path.abspath(locator))
