"""Content-addressed dedup: skip (collector, generator, batch) combinations already processed."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pigeon.hashing import canonicalize, fingerprint
from pigeon.models import CollectedBatch
from pigeon.storage import artifact_name, write_atomic

logger = logging.getLogger(__name__)


class DedupError(Exception):
    """Raised when a marker would be written before its batch is persisted."""


@dataclass(frozen=True)
class Reservation:
    is_new: bool
    fingerprint: str
    marker_path: Path


def batch_fingerprint(collector_id: str, generator_id: str, batch: CollectedBatch) -> str:
    return fingerprint(f"{collector_id}-{generator_id}-{canonicalize(batch)}")


class DedupGate:
    """Marker-file store keyed by fingerprint.

    check_and_reserve() has no await points, so within one event loop the
    existence check and the in-flight reservation happen atomically: two
    concurrent cycles can never both see the same fingerprint as new.
    """

    def __init__(self, marker_dir: Path) -> None:
        self._marker_dir = marker_dir
        self._in_flight: set[str] = set()

    def marker_path(self, fp: str, collector_id: str, generator_id: str) -> Path:
        return self._marker_dir / artifact_name(fp, collector_id, generator_id, "processed")

    def check_and_reserve(
        self,
        collector_id: str,
        generator_id: str,
        batch: CollectedBatch,
    ) -> Reservation:
        fp = batch_fingerprint(collector_id, generator_id, batch)
        marker = self.marker_path(fp, collector_id, generator_id)

        if marker.exists():
            logger.info("Batch %s already processed (%s/%s)", fp[:12], collector_id, generator_id)
            return Reservation(is_new=False, fingerprint=fp, marker_path=marker)
        if fp in self._in_flight:
            logger.info("Batch %s is being processed by another cycle", fp[:12])
            return Reservation(is_new=False, fingerprint=fp, marker_path=marker)

        self._in_flight.add(fp)
        return Reservation(is_new=True, fingerprint=fp, marker_path=marker)

    def commit(self, reservation: Reservation, persisted_path: Path) -> None:
        """Write the marker. persisted_path must be the already-written batch file."""
        if not reservation.is_new:
            raise DedupError(f"Cannot commit a non-new reservation {reservation.fingerprint[:12]}")
        if not persisted_path.exists():
            raise DedupError(f"Batch {reservation.fingerprint[:12]} not persisted at {persisted_path}")
        write_atomic(
            reservation.marker_path,
            f"{datetime.now(timezone.utc).isoformat()} {persisted_path.name}\n",
        )
        self._in_flight.discard(reservation.fingerprint)
        logger.debug("Marked %s as processed", reservation.fingerprint[:12])

    def release(self, reservation: Reservation) -> None:
        """Drop an uncommitted reservation so the batch is retried on the next pass."""
        if reservation.is_new:
            self._in_flight.discard(reservation.fingerprint)

    def is_processed(self, reservation: Reservation) -> bool:
        return reservation.marker_path.exists()
