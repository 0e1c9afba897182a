"""Tests for pigeon/dedup.py."""

from pathlib import Path

import pytest

from pigeon.dedup import DedupError, DedupGate, batch_fingerprint
from pigeon.hashing import canonicalize, fingerprint


BATCH = [{"title": "Case 1", "link": "https://example.org/1"}]


def _persist(tmp_path: Path, name: str = "batch.collected.json") -> Path:
    path = tmp_path / name
    path.write_text("[]", encoding="utf-8")
    return path


def test_batch_fingerprint_combines_ids_and_canonical_batch():
    expected = fingerprint(f"rss-mcq-{canonicalize(BATCH)}")
    assert batch_fingerprint("rss", "mcq", BATCH) == expected


def test_batch_fingerprint_depends_on_collector_and_generator():
    assert batch_fingerprint("rss", "mcq", BATCH) != batch_fingerprint("rss", "other", BATCH)
    assert batch_fingerprint("rss", "mcq", BATCH) != batch_fingerprint("pubmed", "mcq", BATCH)


def test_new_batch_is_reported_new(data_dir):
    gate = DedupGate(data_dir)
    reservation = gate.check_and_reserve("rss", "mcq", BATCH)
    assert reservation.is_new
    assert reservation.marker_path.parent == data_dir
    assert reservation.marker_path.name == f"{reservation.fingerprint}.rss.mcq.processed"


def test_committed_batch_is_not_new(data_dir):
    gate = DedupGate(data_dir)
    reservation = gate.check_and_reserve("rss", "mcq", BATCH)
    gate.commit(reservation, _persist(data_dir))

    again = gate.check_and_reserve("rss", "mcq", [{"link": "https://example.org/1", "title": "Case 1"}])
    assert not again.is_new
    assert again.fingerprint == reservation.fingerprint


def test_marker_survives_new_gate_instance(data_dir):
    gate = DedupGate(data_dir)
    gate.commit(gate.check_and_reserve("rss", "mcq", BATCH), _persist(data_dir))
    assert not DedupGate(data_dir).check_and_reserve("rss", "mcq", BATCH).is_new


def test_in_flight_reservation_blocks_second_cycle(data_dir):
    gate = DedupGate(data_dir)
    first = gate.check_and_reserve("rss", "mcq", BATCH)
    second = gate.check_and_reserve("rss", "mcq", BATCH)
    assert first.is_new
    assert not second.is_new


def test_release_allows_retry(data_dir):
    gate = DedupGate(data_dir)
    first = gate.check_and_reserve("rss", "mcq", BATCH)
    gate.release(first)
    assert gate.check_and_reserve("rss", "mcq", BATCH).is_new
    assert not first.marker_path.exists()


def test_commit_refuses_without_persisted_batch(data_dir):
    gate = DedupGate(data_dir)
    reservation = gate.check_and_reserve("rss", "mcq", BATCH)
    with pytest.raises(DedupError, match="not persisted"):
        gate.commit(reservation, data_dir / "missing.collected.json")
    assert not reservation.marker_path.exists()


def test_commit_refuses_non_new_reservation(data_dir):
    gate = DedupGate(data_dir)
    gate.commit(gate.check_and_reserve("rss", "mcq", BATCH), _persist(data_dir))
    duplicate = gate.check_and_reserve("rss", "mcq", BATCH)
    with pytest.raises(DedupError):
        gate.commit(duplicate, _persist(data_dir))


def test_is_processed(data_dir):
    gate = DedupGate(data_dir)
    reservation = gate.check_and_reserve("rss", "mcq", BATCH)
    assert not gate.is_processed(reservation)
    gate.commit(reservation, _persist(data_dir))
    assert gate.is_processed(reservation)
