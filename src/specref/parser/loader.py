"""Load API description documents from a URL or a local file.

This module owns all document I/O. :class:`DocumentLoader` turns a locator
(an ``http``/``https``/``file`` URL or a filesystem path) into a
:class:`ResolvedDocument`: the parsed, order-preserving tree plus the
document's canonical identity.

Parsing accepts JSON and YAML with automatic format detection. Both parsers
keep source key order (plain ``dict`` insertion order) and reject a mapping
that repeats a key, so every mapping in a loaded tree has unique keys.
Non-string YAML keys such as the unquoted ``200:`` of a responses object are
converted to their text form.

The loader performs exactly one read per :meth:`DocumentLoader.load` call
and keeps no cache of its own; memoisation belongs to
:class:`~specref.parser.resolver.ReferenceResolver`.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx
import yaml

from specref.exceptions import DocumentIOError, DocumentParseError, NetworkError
from specref.models import LoaderConfig
from specref.tree import Node

logger = logging.getLogger(__name__)

_HTTP_SCHEMES = ("http", "https")
_MERGE_TAG = "tag:yaml.org,2002:merge"


@dataclass(frozen=True)
class ResolvedDocument:
    """A parsed document and the identity it was loaded from.

    Attributes:
        identity: Absolute filesystem path, or the URL exactly as fetched.
        tree: The parsed document root.
    """

    identity: str
    tree: Node


def is_url(locator: str) -> bool:
    """Return True if *locator* should be fetched rather than read from disk.

    A locator is a URL when it has a scheme of at least two characters;
    ``C:\\specs\\api.yaml`` has the one-letter scheme ``c`` and stays a path.
    """
    return len(urlsplit(locator).scheme) > 1


class DocumentLoader:
    """Read and parse documents from the filesystem or over HTTP.

    The HTTP client is created on the first URL load and reused for the
    loader's lifetime; use the loader as a context manager (or call
    :meth:`close`) to release it. A caller-supplied client is never closed by
    the loader.

    Args:
        config: Timeout, redirect and TLS settings. Defaults to
            :class:`~specref.models.LoaderConfig` defaults.
        client: Optional pre-built :class:`httpx.Client`, mainly for tests
            (``httpx.Client(transport=httpx.MockTransport(handler))``).

    Example::

        with DocumentLoader(LoaderConfig(timeout=5)) as loader:
            doc = loader.load("https://example.com/openapi.yaml")
            print(doc.identity, list(doc.tree))
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config or LoaderConfig()
        self._client = client
        self._owns_client = client is None
        self._client_lock = threading.Lock()

    @property
    def config(self) -> LoaderConfig:
        return self._config

    def __enter__(self) -> DocumentLoader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this loader created it."""
        with self._client_lock:
            if self._client is not None and self._owns_client:
                self._client.close()
                self._client = None

    def load(self, locator: str) -> ResolvedDocument:
        """Load and parse the document at *locator*.

        Args:
            locator: An ``http``/``https``/``file`` URL or a filesystem path
                (absolute, or relative to the working directory).

        Returns:
            The parsed document and its canonical identity.

        Raises:
            DocumentIOError: If a local file is missing or unreadable.
            NetworkError: If a URL cannot be fetched, times out, returns a
                non-2xx status, or uses an unsupported scheme.
            DocumentParseError: If the content is not valid JSON or YAML.
        """
        if is_url(locator):
            parts = urlsplit(locator)
            scheme = parts.scheme.lower()
            if scheme == "file":
                return self._load_from_file(url2pathname(parts.path))
            if scheme not in _HTTP_SCHEMES:
                raise NetworkError(
                    f"Unsupported URL scheme '{parts.scheme}' in {locator}"
                )
            return self._load_from_url(locator)
        return self._load_from_file(locator)

    # ------------------------------------------------------------------ #
    # Sources
    # ------------------------------------------------------------------ #

    def _get_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    timeout=self._config.timeout,
                    follow_redirects=self._config.follow_redirects,
                    verify=self._config.verify_ssl,
                )
            return self._client

    def _load_from_url(self, url: str) -> ResolvedDocument:
        """Fetch *url* with a single GET, draining and closing the response."""
        logger.debug("fetching %s", url)
        client = self._get_client()
        try:
            with client.stream("GET", url) as response:
                if not response.is_success:
                    raise NetworkError(
                        f"HTTP {response.status_code} fetching {url}",
                        status_code=response.status_code,
                    )
                body = response.read()
                content_type = response.headers.get("content-type", "")
        except httpx.TimeoutException as exc:
            raise NetworkError(
                f"Timed out after {self._config.timeout}s fetching {url}"
            ) from exc
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            raise NetworkError(f"Failed to fetch {url}: {exc}") from exc

        hint = ""
        if "json" in content_type:
            hint = "json"
        elif "yaml" in content_type or "yml" in content_type:
            hint = "yaml"
        if not hint:
            hint = _hint_from_suffix(urlsplit(url).path)

        tree = parse_document(_decode(body, url), hint=hint, source=url)
        return ResolvedDocument(identity=url, tree=tree)

    def _load_from_file(self, path: str) -> ResolvedDocument:
        """Read the whole file at *path* and parse it."""
        file_path = Path(path).expanduser()
        identity = str(file_path.resolve())
        logger.debug("reading %s", identity)

        if not file_path.exists():
            raise DocumentIOError(f"Document not found: {path}")
        if not file_path.is_file():
            raise DocumentIOError(f"Document is not a regular file: {path}")
        try:
            body = file_path.read_bytes()
        except OSError as exc:
            raise DocumentIOError(f"Failed to read document {path}: {exc}") from exc

        tree = parse_document(
            _decode(body, path), hint=_hint_from_suffix(path), source=path
        )
        return ResolvedDocument(identity=identity, tree=tree)


# ------------------------------------------------------------------ #
# Parsing
# ------------------------------------------------------------------ #


def _hint_from_suffix(path: str) -> str:
    suffix = os.path.splitext(path)[1].lower()
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"
    return ""


def _decode(body: bytes, source: str) -> str:
    try:
        return body.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DocumentParseError(f"Document {source} is not valid UTF-8: {exc}") from exc


def _key_text(key: Any) -> str:
    """Map a scalar YAML key to the string used in the tree."""
    if isinstance(key, str):
        return key
    if key is None:
        return "null"
    if isinstance(key, bool):
        return "true" if key else "false"
    return str(key)


class _UniqueKeyLoader(yaml.SafeLoader):
    """Safe YAML loader that rejects repeated keys and stringifies scalar keys.

    Keys pulled in through a ``<<`` merge may be overridden by explicit keys,
    as YAML specifies; only explicit keys that repeat are an error.
    """

    def construct_mapping(self, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
        if not isinstance(node, yaml.MappingNode):
            raise yaml.constructor.ConstructorError(
                None, None, f"expected a mapping node, but found {node.id}", node.start_mark
            )
        explicit = {id(key_node) for key_node, _ in node.value if key_node.tag != _MERGE_TAG}
        self.flatten_mapping(node)

        mapping: dict[str, Any] = {}
        seen: set[str] = set()
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if isinstance(key, (dict, list)):
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping", node.start_mark,
                    "found unhashable key", key_node.start_mark,
                )
            name = _key_text(key)
            if id(key_node) in explicit:
                if name in seen:
                    raise yaml.constructor.ConstructorError(
                        "while constructing a mapping", node.start_mark,
                        f"found duplicate key '{name}'", key_node.start_mark,
                    )
                seen.add(name)
            mapping[name] = self.construct_object(value_node, deep=deep)
        return mapping


def _unique_pairs(source: str):  # noqa: ANN202
    """Build a ``json`` ``object_pairs_hook`` that rejects duplicate keys."""

    def hook(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in pairs:
            if key in result:
                raise DocumentParseError(f"Duplicate key '{key}' in {source}")
            result[key] = value
        return result

    return hook


def parse_document(content: str, hint: str = "", source: str = "<string>") -> Node:
    """Parse *content* as JSON or YAML into an order-preserving tree.

    Tries JSON first (unless *hint* is ``"yaml"``), then falls back to YAML.
    Valid JSON is also valid YAML, but the JSON parser is stricter and faster.

    Args:
        content: The decoded document text.
        hint: Optional format hint, ``"json"`` or ``"yaml"``.
        source: Locator used in error messages.

    Returns:
        The document root. Any node kind is accepted at the top level.

    Raises:
        DocumentParseError: If the content is empty, repeats a key within a
            mapping, nests deeper than the parsers can follow, or parses as
            neither format.
    """
    if not content.strip():
        raise DocumentParseError(f"Document is empty: {source}")

    json_error: Exception | None = None

    if hint != "yaml":
        try:
            return json.loads(content, object_pairs_hook=_unique_pairs(source))
        except RecursionError:
            raise DocumentParseError(f"Document {source} is nested too deeply") from None
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise DocumentParseError(f"Invalid JSON in {source}: {exc}") from exc

    try:
        result = yaml.load(content, Loader=_UniqueKeyLoader)  # noqa: S506
    except RecursionError:
        raise DocumentParseError(f"Document {source} is nested too deeply") from None
    except yaml.YAMLError as exc:
        msg = f"Failed to parse {source} as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise DocumentParseError(msg) from exc

    if result is None:
        raise DocumentParseError(f"Document is empty: {source}")
    return result
