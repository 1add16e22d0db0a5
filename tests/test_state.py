"""Commit model and CommitGraph tests."""

import hashlib
import re

import pytest

from twig.cas import ContentStore
from twig.errors import RepositoryStateError, UsageError
from twig.state import (
    ROOT_MESSAGE,
    ROOT_TIMESTAMP,
    Blob,
    Commit,
    CommitGraph,
    compute_commit_id,
    format_timestamp,
)


@pytest.fixture
def graph(tmp_path):
    return CommitGraph(ContentStore(tmp_path / "objects"))


def _child(graph, parent, files: dict[str, bytes], message="change", timestamp="T"):
    snapshot = {name: graph.store.store_blob(data) for name, data in files.items()}
    return graph.add(graph.create(message, parent.id, snapshot, timestamp=timestamp))


class TestRootCommit:
    def test_root_id_is_hash_of_message_and_epoch(self, graph):
        root = graph.create_root()
        expected = hashlib.sha1((ROOT_MESSAGE + ROOT_TIMESTAMP).encode()).hexdigest()
        assert root.id == expected
        assert root.parent is None
        assert root.snapshot == {}
        assert root.timestamp == ROOT_TIMESTAMP

    def test_independent_graphs_share_root_id(self, tmp_path):
        a = CommitGraph(ContentStore(tmp_path / "a"))
        b = CommitGraph(ContentStore(tmp_path / "b"))
        assert a.create_root().id == b.create_root().id

    def test_root_ignores_snapshot(self, graph):
        h = graph.store.store_blob(b"x")
        assert graph.create(ROOT_MESSAGE, None, {"x.txt": h}).snapshot == {}


class TestCommitId:
    BASE = ("msg", "Thu Nov 9 20:00:05 2017 -0800", "p" * 40, {"a.txt": b"1", "b.txt": b"2"})

    def test_deterministic(self):
        assert compute_commit_id(*self.BASE) == compute_commit_id(*self.BASE)

    def test_insertion_order_does_not_matter(self):
        msg, ts, parent, _ = self.BASE
        forward = compute_commit_id(msg, ts, parent, {"a.txt": b"1", "b.txt": b"2"})
        backward = compute_commit_id(msg, ts, parent, {"b.txt": b"2", "a.txt": b"1"})
        assert forward == backward

    @pytest.mark.parametrize(
        "changed",
        [
            ("other", None, None, None),
            (None, "Fri Nov 10 20:00:05 2017 -0800", None, None),
            (None, None, "q" * 40, None),
            (None, None, None, {"a.txt": b"1", "b.txt": b"3"}),
            (None, None, None, {"a.txt": b"1", "c.txt": b"2"}),
        ],
    )
    def test_changing_any_field_changes_id(self, changed):
        args = [new if new is not None else old for new, old in zip(changed, self.BASE)]
        assert compute_commit_id(*args) != compute_commit_id(*self.BASE)

    def test_merge_parent_only_counts_when_set(self):
        assert compute_commit_id(*self.BASE, merge_parent=None) == compute_commit_id(*self.BASE)
        assert compute_commit_id(*self.BASE, merge_parent="m" * 40) != compute_commit_id(
            *self.BASE
        )


class TestCreate:
    def test_empty_message_rejected(self, graph):
        root = graph.add(graph.create_root())
        with pytest.raises(UsageError, match="Please enter a commit message"):
            graph.create("", root.id, {})

    def test_create_does_not_persist(self, graph):
        root = graph.add(graph.create_root())
        commit = graph.create("m", root.id, {}, timestamp="T")
        assert not graph.exists(commit.id)

    def test_snapshot_contents_go_into_id(self, graph):
        root = graph.add(graph.create_root())
        h = graph.store.store_blob(b"hi")
        commit = graph.create("m", root.id, {"a.txt": h}, timestamp="T")
        assert commit.id == compute_commit_id("m", "T", root.id, {"a.txt": b"hi"})

    def test_read_blob_override(self, graph):
        root = graph.add(graph.create_root())
        commit = graph.create(
            "m", root.id, {"a.txt": "d" * 40}, read_blob=lambda digest: b"staged", timestamp="T"
        )
        assert commit.id == compute_commit_id("m", "T", root.id, {"a.txt": b"staged"})

    def test_missing_blob_raises(self, graph):
        root = graph.add(graph.create_root())
        with pytest.raises(RepositoryStateError, match="missing"):
            graph.create("m", root.id, {"a.txt": "d" * 40})

    def test_default_timestamp_is_local_time(self, graph):
        root = graph.add(graph.create_root())
        commit = graph.create("m", root.id, {})
        assert commit.timestamp != ROOT_TIMESTAMP


class TestLookup:
    def test_get_loads_from_store(self, graph, tmp_path):
        root = graph.add(graph.create_root())
        fresh = CommitGraph(graph.store)
        assert fresh.get(root.id) == root

    def test_get_missing(self, graph):
        assert graph.get("0" * 40) is None

    def test_resolve_by_prefix(self, graph):
        root = graph.add(graph.create_root())
        assert graph.resolve(root.id[:8]).id == root.id

    def test_resolve_unknown(self, graph):
        graph.add(graph.create_root())
        with pytest.raises(RepositoryStateError, match="No commit with that id exists"):
            graph.resolve("0000000")

    def test_resolve_ambiguous(self, graph):
        graph.store.store_commit("ab1" + "0" * 37, b"{}")
        graph.store.store_commit("ab2" + "0" * 37, b"{}")
        with pytest.raises(RepositoryStateError, match="Ambiguous"):
            graph.resolve("ab")


class TestTraversal:
    def test_history_walks_to_root(self, graph):
        root = graph.add(graph.create_root())
        first = _child(graph, root, {"a.txt": b"1"}, message="first")
        second = _child(graph, first, {"a.txt": b"2"}, message="second")
        assert [c.message for c in graph.history(second.id)] == [
            "second",
            "first",
            ROOT_MESSAGE,
        ]

    def test_all_enumerates_persisted(self, graph):
        root = graph.add(graph.create_root())
        child = _child(graph, root, {"a.txt": b"1"})
        assert {c.id for c in graph.all()} == {root.id, child.id}


class TestSerialization:
    def test_commit_bytes_round_trip(self, graph):
        root = graph.add(graph.create_root())
        child = _child(graph, root, {"a.txt": b"1"})
        assert Commit.from_bytes(child.to_bytes()) == child

    def test_blob_identity_is_digest(self):
        a = Blob.from_bytes("a.txt", b"same")
        b = Blob.from_bytes("b.txt", b"same")
        assert a.digest == b.digest


def test_format_timestamp_shape():
    assert re.fullmatch(
        r"[A-Z][a-z]{2} [A-Z][a-z]{2} \d{1,2} \d{2}:\d{2}:\d{2} \d{4} [+-]\d{4}",
        format_timestamp(),
    )
