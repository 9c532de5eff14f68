from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

import skillyard.snapshot as snapshot_mod
from skillyard.errors import SnapshotNotFoundError
from skillyard.hashing import hash_tree
from skillyard.snapshot import SnapshotStore


def test_snapshot_round_trip(tmp_path: Path, make_skill) -> None:
    agent = tmp_path / "agent"
    s = make_skill(agent, "fmt", body="v1\n")
    (s / "scripts").mkdir()
    (s / "scripts" / "run.sh").write_text("echo\n", encoding="utf-8")
    before = hash_tree(s).tree_hash

    store = SnapshotStore(tmp_path / "snaps", max_count=5)
    sid = store.create_snapshot([s], "pre-sync")

    (s / "SKILL.md").write_text("clobbered", encoding="utf-8")
    (s / "extra.md").write_text("new", encoding="utf-8")
    assert hash_tree(s).tree_hash != before

    assert store.restore(sid, agent) == ["fmt"]
    assert hash_tree(agent / "fmt").tree_hash == before


def test_manifest_and_listing(tmp_path: Path, make_skill) -> None:
    a = make_skill(tmp_path / "claude", "x")
    b = make_skill(tmp_path / "cursor", "x", body="other\n")
    store = SnapshotStore(tmp_path / "snaps", max_count=5)

    sid1 = store.create_snapshot([a, b], "first")
    sid2 = store.create_snapshot([a], "second")

    m = store.get_snapshot(sid1)
    # Duplicate basenames keep the first copy only.
    assert m.skills == ("x",)
    assert m.reason == "first"
    assert [s.id for s in store.list_snapshots()] == [sid2, sid1]
    assert store.get_latest_snapshot().id == sid2


def test_retention_keeps_newest(tmp_path: Path, make_skill) -> None:
    s = make_skill(tmp_path / "agent", "x")
    store = SnapshotStore(tmp_path / "snaps", max_count=2)
    ids = [store.create_snapshot([s], f"r{i}") for i in range(4)]

    listed = [m.id for m in store.list_snapshots()]
    assert listed == [ids[3], ids[2]]
    assert not (tmp_path / "snaps" / ids[0]).exists()


def test_ids_are_unique_within_same_millisecond(tmp_path: Path, make_skill) -> None:
    s = make_skill(tmp_path / "agent", "x")
    store = SnapshotStore(tmp_path / "snaps", max_count=50)
    ids = [store.create_snapshot([s], "r") for _ in range(5)]
    assert len(set(ids)) == 5


def test_corrupt_snapshot_dir_is_skipped(tmp_path: Path, make_skill) -> None:
    s = make_skill(tmp_path / "agent", "x")
    store = SnapshotStore(tmp_path / "snaps", max_count=5)
    sid = store.create_snapshot([s], "ok")
    bad = tmp_path / "snaps" / "garbage"
    bad.mkdir()
    (bad / "manifest.json").write_text("{nope", encoding="utf-8")
    (tmp_path / "snaps" / "no-manifest").mkdir()

    assert [m.id for m in store.list_snapshots()] == [sid]


def test_unknown_snapshot(tmp_path: Path) -> None:
    store = SnapshotStore(tmp_path / "snaps", max_count=5)
    with pytest.raises(SnapshotNotFoundError):
        store.restore("2020-01-01T00-00-00-000Z", tmp_path / "out")
    with pytest.raises(SnapshotNotFoundError):
        store.delete_snapshot("nope")
    assert store.get_latest_snapshot() is None


def test_max_count_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SnapshotStore(tmp_path, max_count=0)


class _FrozenClock:
    @staticmethod
    def now(tz=None):
        return datetime(2026, 10, 19, 18, 7, 16, 479000, tzinfo=timezone.utc)


def test_same_millisecond_snapshots_order_and_prune(tmp_path: Path, make_skill, monkeypatch) -> None:
    monkeypatch.setattr(snapshot_mod, "datetime", _FrozenClock)
    s = make_skill(tmp_path / "agent", "x")
    store = SnapshotStore(tmp_path / "snaps", max_count=3)

    ids = [store.create_snapshot([s], f"r{i}") for i in range(5)]
    assert ids[0] == "2026-10-19T18-07-16-479Z"
    assert ids[1] == "2026-10-19T18-07-16-479Z-1"

    listed = [m.id for m in store.list_snapshots()]
    assert listed == [ids[4], ids[3], ids[2]]
    assert store.get_latest_snapshot().id == ids[4]
    assert not (tmp_path / "snaps" / ids[0]).exists()
    assert not (tmp_path / "snaps" / ids[1]).exists()
