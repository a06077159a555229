"""Tests for specref.parser.resolver."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import httpx
import pytest

from specref.exceptions import (
    CyclicReferenceError,
    DocumentIOError,
    NetworkError,
    ReferenceResolutionError,
)
from specref.parser.loader import DocumentLoader
from specref.parser.resolver import (
    ReferenceResolver,
    ResolverCache,
    fragment_segments,
    join_locator,
    split_reference,
    walk_fragment,
)


# ---------------------------------------------------------------------------
# Reference syntax
# ---------------------------------------------------------------------------


class TestSplitReference:
    @pytest.mark.parametrize(
        "ref, expected",
        [
            ("other.yaml#/definitions/Widget", ("other.yaml", "/definitions/Widget")),
            ("#/definitions/Widget", ("", "/definitions/Widget")),
            ("other.yaml", ("other.yaml", None)),
            ("other.yaml#", ("other.yaml", "")),
            ("a.yaml#/x#y", ("a.yaml", "/x#y")),
        ],
    )
    def test_split(self, ref: str, expected: tuple) -> None:
        assert split_reference(ref) == expected


class TestJoinLocator:
    def test_empty_file_part_is_base(self) -> None:
        assert join_locator("spec/root.yaml", "") == "spec/root.yaml"

    def test_relative_to_base_directory(self) -> None:
        joined = join_locator("spec/root.yaml", "components/parts.yaml")
        assert joined == os.path.normpath("spec/components/parts.yaml")

    def test_parent_segments_normalised(self) -> None:
        joined = join_locator("spec/components/parts.yaml", "../other.yaml")
        assert joined == os.path.normpath("spec/other.yaml")

    def test_absolute_path_passes_through(self, tmp_path: Path) -> None:
        target = str(tmp_path / "x.yaml")
        assert join_locator("spec/root.yaml", target) == target

    def test_url_passes_through(self) -> None:
        url = "https://example.com/common.yaml"
        assert join_locator("spec/root.yaml", url) == url

    def test_relative_to_url_base(self) -> None:
        joined = join_locator("https://example.com/specs/root.yaml", "common/types.yaml")
        assert joined == "https://example.com/specs/common/types.yaml"


class TestFragmentSegments:
    @pytest.mark.parametrize("fragment", ["", "/"])
    def test_whole_document(self, fragment: str) -> None:
        assert fragment_segments(fragment) == []

    def test_plain_path(self) -> None:
        assert fragment_segments("/definitions/Widget") == ["definitions", "Widget"]

    def test_escapes(self) -> None:
        assert fragment_segments("/paths/~1widgets~1{id}") == ["paths", "/widgets/{id}"]
        assert fragment_segments("/tilde~0key") == ["tilde~key"]
        # ~01 decodes to ~1, not to /
        assert fragment_segments("/a~01b") == ["a~1b"]

    def test_percent_decoding(self) -> None:
        assert fragment_segments("/paths/%7Bid%7D/a%20b") == ["paths", "{id}", "a b"]

    def test_literal_percent_is_written_escaped(self) -> None:
        assert fragment_segments("/a%2541") == ["a%41"]
        assert fragment_segments("/100%25") == ["100%"]


class TestWalkFragment:
    TREE = {"definitions": {"Widget": {"type": "object"}}, "tags": [{"name": "w"}]}

    def test_walks_keys(self) -> None:
        node = walk_fragment(self.TREE, "/definitions/Widget", "#/definitions/Widget", "b")
        assert node is self.TREE["definitions"]["Widget"]

    def test_empty_fragment_returns_root(self) -> None:
        assert walk_fragment(self.TREE, "", "#", "b") is self.TREE

    def test_missing_key(self) -> None:
        with pytest.raises(ReferenceResolutionError) as exc_info:
            walk_fragment(self.TREE, "/definitions/Gizmo", "#/definitions/Gizmo", "b")
        assert exc_info.value.segment == "Gizmo"
        assert "not found at '/definitions'" in str(exc_info.value)

    def test_sequences_are_not_indexed(self) -> None:
        with pytest.raises(ReferenceResolutionError, match="Cannot descend into sequence"):
            walk_fragment(self.TREE, "/tags/0", "#/tags/0", "b")

    def test_scalar_blocks_descent(self) -> None:
        with pytest.raises(ReferenceResolutionError, match="Cannot descend into scalar") as exc_info:
            walk_fragment(self.TREE, "/definitions/Widget/type/x", "r", "b")
        assert exc_info.value.segment == "x"


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


class TestResolve:
    def test_external_fragment(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            widget = resolver.resolve(root_yaml, "other.yaml#/definitions/Widget")
        assert list(widget) == ["type", "required", "properties"]
        assert widget["required"] == ["id"]
        assert widget["properties"]["part"] == {"$ref": "components/parts.yaml#/Part"}

    def test_local_fragment_loads_only_base(
        self, root_yaml: str, counting_loader: DocumentLoader
    ) -> None:
        resolver = ReferenceResolver(loader=counting_loader)
        widget = resolver.resolve(root_yaml, "#/definitions/Widget")
        assert widget == {"type": "object", "properties": {"name": {"type": "string"}}}
        assert counting_loader.calls == [root_yaml]

    def test_whole_document_without_fragment(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            doc = resolver.resolve(root_yaml, "other.yaml")
        assert list(doc) == ["definitions"]

    @pytest.mark.parametrize("ref", ["other.yaml#", "other.yaml#/"])
    def test_empty_fragment_is_whole_document(self, root_yaml: str, ref: str) -> None:
        with ReferenceResolver() as resolver:
            assert list(resolver.resolve(root_yaml, ref)) == ["definitions"]

    def test_escaped_segments(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            assert resolver.resolve(root_yaml, "other.yaml#/definitions/a~1b") == {"value": "escaped"}
            assert resolver.resolve(root_yaml, "other.yaml#/definitions/a%2Fb") == {"value": "escaped"}
            assert resolver.resolve(root_yaml, "other.yaml#/definitions/tilde~0key") == {"value": "tilde"}

    def test_key_containing_percent(self, tmp_path: Path) -> None:
        doc = tmp_path / "codes.yaml"
        doc.write_text("'a%41': literal\nA: decoded\n", encoding="utf-8")
        with ReferenceResolver() as resolver:
            assert resolver.resolve(str(doc), "#/a%2541") == "literal"
            assert resolver.resolve(str(doc), "#/%41") == "decoded"

    def test_numeric_response_key(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            response = resolver.resolve(root_yaml, "#/paths/~1widgets/get/responses/200")
        assert response["description"] == "OK"

    def test_missing_file(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            with pytest.raises(DocumentIOError) as exc_info:
                resolver.resolve(root_yaml, "missing.yaml#/x")
        message = str(exc_info.value)
        assert "not found" in message
        assert "while resolving 'missing.yaml#/x'" in message

    def test_missing_url(self, root_yaml: str, mock_http) -> None:
        client = mock_http({})
        resolver = ReferenceResolver(loader=DocumentLoader(client=client))
        with pytest.raises(NetworkError) as exc_info:
            resolver.resolve(root_yaml, "https://example.com/gone.yaml#/x")
        assert exc_info.value.status_code == 404
        assert "while resolving" in str(exc_info.value)

    def test_missing_key_reports_segment(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            with pytest.raises(ReferenceResolutionError) as exc_info:
                resolver.resolve(root_yaml, "other.yaml#/definitions/Gizmo")
        err = exc_info.value
        assert err.segment == "Gizmo"
        assert err.ref == "other.yaml#/definitions/Gizmo"
        assert err.base == root_yaml

    def test_cannot_index_sequence(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            with pytest.raises(ReferenceResolutionError) as exc_info:
                resolver.resolve(root_yaml, "#/tags/0")
        assert exc_info.value.segment == "0"

    def test_remote_relative_reference(self, mock_http) -> None:
        base = "https://example.com/specs/root.yaml"
        types = "https://example.com/specs/common/types.yaml"
        client = mock_http({
            base: httpx.Response(200, text="thing:\n  $ref: common/types.yaml#/Thing\n"),
            types: httpx.Response(200, text="Thing:\n  type: string\n"),
        })
        resolver = ReferenceResolver(loader=DocumentLoader(client=client))
        assert resolver.resolve(base, "common/types.yaml#/Thing") == {"type": "string"}
        assert client.requested == [types]


# ---------------------------------------------------------------------------
# Memoisation
# ---------------------------------------------------------------------------


class TestCaching:
    def test_repeat_returns_same_object_without_reload(
        self, root_yaml: str, counting_loader: DocumentLoader
    ) -> None:
        resolver = ReferenceResolver(loader=counting_loader)
        first = resolver.resolve(root_yaml, "other.yaml#/definitions/Widget")
        second = resolver.resolve(root_yaml, "other.yaml#/definitions/Widget")
        assert first is second
        assert len(counting_loader.calls) == 1
        assert resolver.stats() == {"entries": 1, "hits": 1, "misses": 1, "loads": 1}

    def test_distinct_refs_are_separate_entries(
        self, root_yaml: str, counting_loader: DocumentLoader
    ) -> None:
        resolver = ReferenceResolver(loader=counting_loader)
        resolver.resolve(root_yaml, "other.yaml#/definitions/Widget")
        resolver.resolve(root_yaml, "other.yaml#/definitions/Gadget")
        assert (root_yaml, "other.yaml#/definitions/Widget") in resolver.cache
        assert len(resolver.cache) == 2

    def test_failures_are_not_cached(
        self, root_yaml: str, counting_loader: DocumentLoader
    ) -> None:
        resolver = ReferenceResolver(loader=counting_loader)
        for _ in range(2):
            with pytest.raises(ReferenceResolutionError):
                resolver.resolve(root_yaml, "#/definitions/Nope")
        assert len(resolver.cache) == 0
        assert len(counting_loader.calls) == 2

    def test_failed_compute_releases_key_lock(self) -> None:
        cache = ResolverCache()

        def fail() -> None:
            raise ReferenceResolutionError("no such key", ref="#/x", base="doc.yaml")

        for _ in range(3):
            with pytest.raises(ReferenceResolutionError):
                cache.get_or_compute(("doc.yaml", "#/x"), fail)
        assert cache._key_locks == {}
        assert cache.get_or_compute(("doc.yaml", "#/x"), lambda: "found") == "found"
        assert cache._key_locks == {}
        assert cache.misses == 1

    def test_shared_cache_between_resolvers(
        self, root_yaml: str, counting_loader: DocumentLoader
    ) -> None:
        cache = ResolverCache()
        first = ReferenceResolver(loader=counting_loader, cache=cache)
        second = ReferenceResolver(loader=counting_loader, cache=cache)
        a = first.resolve(root_yaml, "#/definitions/Widget")
        b = second.resolve(root_yaml, "#/definitions/Widget")
        assert a is b
        assert len(counting_loader.calls) == 1

    def test_clear_resets_counters(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            resolver.resolve(root_yaml, "#/definitions/Widget")
            resolver.cache.clear()
            assert len(resolver.cache) == 0
            assert resolver.cache.hits == 0
            assert resolver.cache.misses == 0

    def test_concurrent_callers_share_one_load(
        self, root_yaml: str, slow_loader: DocumentLoader
    ) -> None:
        loader = slow_loader
        resolver = ReferenceResolver(loader=loader)
        results: list[object] = []
        errors: list[BaseException] = []
        results_lock = threading.Lock()
        start = threading.Barrier(10)

        def worker() -> None:
            start.wait()
            try:
                for _ in range(10):
                    node = resolver.resolve(root_yaml, "other.yaml#/definitions/Widget")
                    with results_lock:
                        results.append(node)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 100
        assert all(node is results[0] for node in results)
        assert len(loader.calls) == 1


# ---------------------------------------------------------------------------
# dereference / resolve_deep
# ---------------------------------------------------------------------------


class TestDereference:
    def test_inlines_across_documents(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            widget = resolver.resolve_deep(root_yaml, "other.yaml#/definitions/Widget")
        part = widget["properties"]["part"]
        assert part["properties"]["sku"] == {"type": "string"}
        assert part["properties"]["owner"] == {"description": "A gadget owns parts"}

    def test_cached_trees_are_not_modified(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            raw = resolver.resolve(root_yaml, "other.yaml#/definitions/Widget")
            resolver.resolve_deep(root_yaml, "other.yaml#/definitions/Widget")
            assert raw["properties"]["part"] == {"$ref": "components/parts.yaml#/Part"}

    def test_dereference_subtree(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            doc = resolver.resolve(root_yaml, "")
            expanded = resolver.dereference(root_yaml, doc["paths"])
        schema = expanded["/widgets"]["get"]["responses"]["200"]["schema"]
        assert schema["properties"]["id"] == {"type": "integer"}
        assert "$ref" not in schema

    def test_items_in_sequences_are_inlined(self, spec_dir: Path) -> None:
        petstore = str(spec_dir / "petstore.json")
        with ReferenceResolver() as resolver:
            pet_list = resolver.resolve_deep(petstore, "#/components/schemas/PetList")
        assert pet_list["items"]["properties"]["name"] == {"type": "string"}

    def test_chained_local_reference(self, root_yaml: str) -> None:
        with ReferenceResolver() as resolver:
            local = resolver.resolve_deep(root_yaml, "#/definitions/Local")
        assert local == {"type": "object", "properties": {"name": {"type": "string"}}}

    def test_self_cycle_raises(self, spec_dir: Path) -> None:
        cycle = str(spec_dir / "cycle.yaml")
        with ReferenceResolver() as resolver:
            with pytest.raises(CyclicReferenceError) as exc_info:
                resolver.resolve_deep(cycle, "#/definitions/Node")
        assert len(exc_info.value.chain) == 2
        assert exc_info.value.chain[0] == exc_info.value.chain[-1]

    def test_cross_document_cycle_raises(self, spec_dir: Path) -> None:
        cycle = str(spec_dir / "cycle.yaml")
        with ReferenceResolver() as resolver:
            with pytest.raises(CyclicReferenceError, match="Cyclic reference") as exc_info:
                resolver.resolve_deep(cycle, "#/definitions/A")
        chain = exc_info.value.chain
        assert len(chain) == 3
        assert chain[1].endswith("cycle_b.yaml#/B")

    def test_keep_cycles_leaves_reference(self, spec_dir: Path) -> None:
        cycle = str(spec_dir / "cycle.yaml")
        with ReferenceResolver() as resolver:
            node = resolver.resolve_deep(cycle, "#/definitions/Node", keep_cycles=True)
        assert node["properties"]["value"] == {"type": "string"}
        assert node["properties"]["next"] == {"$ref": "#/definitions/Node"}

    def test_repeated_non_cyclic_reference_is_fine(self, tmp_path: Path) -> None:
        doc = tmp_path / "doc.yaml"
        doc.write_text(
            "A:\n  x:\n    $ref: '#/B'\n  y:\n    $ref: '#/B'\nB:\n  type: string\n",
            encoding="utf-8",
        )
        with ReferenceResolver() as resolver:
            node = resolver.resolve_deep(str(doc), "#/A")
        assert node == {"x": {"type": "string"}, "y": {"type": "string"}}

    def test_deeply_nested_tree(self, tmp_path: Path) -> None:
        depth = 5000
        doc = tmp_path / "leaf.yaml"
        doc.write_text("leaf: bottom\n", encoding="utf-8")
        tree: object = {"$ref": "#/leaf"}
        for index in range(depth):
            tree = {"a": tree} if index % 2 else [tree]

        with ReferenceResolver() as resolver:
            node = resolver.dereference(str(doc), tree)

        for index in reversed(range(depth)):
            node = node["a"] if index % 2 else node[0]
        assert node == "bottom"

    def test_deep_chain_of_references(self, tmp_path: Path) -> None:
        depth = 1500
        lines = [f"n{i}:\n  next:\n    $ref: '#/n{i + 1}'\n" for i in range(depth)]
        lines.append(f"n{depth}: end\n")
        doc = tmp_path / "chain.yaml"
        doc.write_text("".join(lines), encoding="utf-8")

        with ReferenceResolver() as resolver:
            node = resolver.resolve_deep(str(doc), "#/n0")

        for _ in range(depth):
            node = node["next"]
        assert node == "end"
