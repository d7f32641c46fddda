"""Texture memory manager for decoded animation frames.

Every image block that decoded at least its first frame owns one
AnimationRecord. The manager keeps an exact count of the bytes committed to
frame data across all records and enforces a hard budget:

- Before an admission would push the total past the cleanup threshold,
  least-recently-used records that are not playing are evicted to lazy mode
  (frames dropped, first-frame snapshot and metadata kept).
- If evicting every candidate could still not make room under the hard
  budget, nothing is evicted and the record is admitted in lazy mode with a
  warning; the pipeline never stalls.
- The first-frame snapshot is exempt from eviction, so a visible placeholder
  is never lost.

All methods run on the interactive thread, no locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .frames import DecodedMedia, FrameTexture, MediaFormat

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass(eq=False)
class AnimationRecord:
    """Decoded media and playback state of one image block."""

    block_id: str
    source_path: str | None = None
    format: MediaFormat = MediaFormat.UNKNOWN
    frames: list[FrameTexture] = field(default_factory=list)
    snapshot: FrameTexture | None = None
    current_index: int = 0
    elapsed_in_frame: float = 0.0
    playing: bool = False
    crashed: bool = False
    last_interaction: float = 0.0
    source_frame_count: int = 1
    truncated: bool = False
    # Recovery / reload bookkeeping
    recovery_requested: bool = False
    pending_play: bool = False
    # Bytes currently accounted for this record in the pool
    charged_bytes: int = 0

    @property
    def lazy(self) -> bool:
        """Only the first-frame snapshot is held."""
        return not self.frames

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def is_animated(self) -> bool:
        return self.source_frame_count > 1

    @property
    def current_frame(self) -> FrameTexture | None:
        if 0 <= self.current_index < len(self.frames):
            return self.frames[self.current_index]
        return None

    @property
    def frame_bytes(self) -> int:
        return sum(frame.nbytes for frame in self.frames)

    @property
    def snapshot_bytes(self) -> int:
        return self.snapshot.nbytes if self.snapshot is not None else 0

    @property
    def committed_bytes(self) -> int:
        """Bytes held by frames and snapshot."""
        return self.frame_bytes + self.snapshot_bytes


class TextureMemoryManager:
    """Owns animation records and the committed-bytes pool.

    :param budget_bytes: Hard texture budget
    :param threshold_bytes: Cleanup threshold (defaults to 80% of the budget)
    """

    def __init__(
        self,
        budget_bytes: int = 512 * MB,
        threshold_bytes: int | None = None,
    ):
        self.budget_bytes = budget_bytes
        self.threshold_bytes = (
            threshold_bytes if threshold_bytes is not None else int(budget_bytes * 0.8)
        )
        self._records: dict[str, AnimationRecord] = {}
        self._total_bytes = 0

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def total_bytes(self) -> int:
        """Bytes committed across all records."""
        return self._total_bytes

    def get(self, block_id: str) -> AnimationRecord | None:
        return self._records.get(block_id)

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._records

    def records(self) -> list[AnimationRecord]:
        return list(self._records.values())

    @property
    def stats(self) -> dict[str, Any]:
        """Resource statistics."""
        records = self._records.values()
        return {
            "total_bytes": self._total_bytes,
            "max_bytes": self.budget_bytes,
            "threshold_bytes": self.threshold_bytes,
            "record_count": len(self._records),
            "lazy_count": sum(1 for r in records if r.lazy),
            "playing_count": sum(1 for r in records if r.playing),
            "crashed_count": sum(1 for r in records if r.crashed),
            "frame_count": sum(r.frame_count for r in records),
            "usage_percent": (
                self._total_bytes / self.budget_bytes * 100
                if self.budget_bytes > 0
                else 0
            ),
        }

    # -------------------------------------------------------------------------
    # Admission / eviction
    # -------------------------------------------------------------------------

    def admit(
        self,
        block_id: str,
        media: DecodedMedia,
        now: float,
        source_path: str | None = None,
        snapshot_only: bool = False,
        protected: Iterable[str] = (),
    ) -> AnimationRecord:
        """Create or refresh the record of a block from a decode result.

        :param block_id: Owning block
        :param media: Decoded media
        :param now: Current tick time (becomes the last interaction)
        :param source_path: Source path (defaults to the media path)
        :param snapshot_only: Only take the first frame as snapshot
            (first-frame reload), keeping any frames the record has
        :param protected: Records never evicted by this admission
        :return: The admitted record
        """
        record = self._records.get(block_id)
        if record is None:
            record = AnimationRecord(
                block_id=block_id,
                source_path=source_path or media.path,
                format=media.format,
                source_frame_count=media.source_frame_count,
                last_interaction=now,
            )
            self._records[block_id] = record

        new_snapshot = None
        if record.snapshot is None or not record.snapshot.is_valid:
            new_snapshot = media.frames[0].copy()

        new_frames = None if snapshot_only else list(media.frames)
        incoming = new_snapshot.nbytes if new_snapshot is not None else 0
        if new_frames is not None:
            incoming += sum(f.nbytes for f in new_frames) - record.frame_bytes

        exclude = {block_id, *protected}
        evictable = sum(r.frame_bytes for r in self._eviction_candidates(exclude))
        if new_frames is not None and self._total_bytes + incoming - evictable > self.budget_bytes:
            # Evicting everything would still not fit; leave the other records alone
            logger.warning(
                f"Texture budget exhausted: {self._total_bytes / MB:.1f} MB committed, "
                f"{incoming / MB:.1f} MB requested by {block_id}; admitting in lazy mode"
            )
            new_frames = []
            incoming = (new_snapshot.nbytes if new_snapshot is not None else 0) - record.frame_bytes
        self._make_room(incoming, exclude)

        if new_snapshot is not None:
            record.snapshot = new_snapshot
        if new_frames is not None:
            record.frames = new_frames
            record.format = media.format
            record.source_frame_count = media.source_frame_count
            record.truncated = media.truncated
            record.current_index = 0
            record.elapsed_in_frame = 0.0
            if new_frames:
                record.crashed = False
                record.recovery_requested = False
        record.last_interaction = now
        self._recharge(record)

        logger.debug(
            f"Admitted {block_id}: {record.frame_count} frames, "
            f"{record.committed_bytes / MB:.2f} MB, pool {self._total_bytes / MB:.1f} MB"
        )
        return record

    def evict(self, bytes_to_free: int, exclude: Iterable[str] = ()) -> list[str]:
        """Move least-recently-used idle records to lazy mode.

        Candidates are records holding frames that are not playing, ordered
        by (last interaction, block id).

        :param bytes_to_free: Bytes to release
        :param exclude: Block ids never evicted
        :return: Ids of evicted records
        """
        freed = 0
        evicted = []
        for record in self._eviction_candidates(exclude):
            if freed >= bytes_to_free:
                break
            before = record.charged_bytes
            record.frames = []
            record.current_index = 0
            record.elapsed_in_frame = 0.0
            self._recharge(record)
            freed += before - record.charged_bytes
            evicted.append(record.block_id)
            logger.info(f"Lazy unloaded animation {record.block_id} ({(before - record.charged_bytes) / MB:.2f} MB)")
        return evicted

    def set_snapshot(self, block_id: str, frame: FrameTexture) -> bool:
        """Replace the first-frame snapshot of a record (crash recovery).

        :return: False if the block has no record
        """
        record = self._records.get(block_id)
        if record is None:
            return False
        snapshot = frame.copy()
        self._make_room(snapshot.nbytes - record.snapshot_bytes, {block_id})
        record.snapshot = snapshot
        self._recharge(record)
        return True

    def touch(self, block_id: str, now: float) -> None:
        record = self._records.get(block_id)
        if record is not None:
            record.last_interaction = now

    def release(self, block_id: str) -> int:
        """Drop the record of a deleted block.

        :return: Exactly the bytes the record held
        """
        record = self._records.pop(block_id, None)
        if record is None:
            return 0
        freed = record.charged_bytes
        self._total_bytes -= freed
        record.frames = []
        record.snapshot = None
        record.charged_bytes = 0
        logger.debug(f"Released record {block_id} ({freed / MB:.2f} MB)")
        return freed

    def clear(self) -> None:
        for block_id in list(self._records):
            self.release(block_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _eviction_candidates(self, exclude: Iterable[str]) -> list[AnimationRecord]:
        excluded = set(exclude)
        return sorted(
            (
                r for r in self._records.values()
                if r.frames and not r.playing and r.block_id not in excluded
            ),
            key=lambda r: (r.last_interaction, r.block_id),
        )

    def _make_room(self, incoming: int, exclude: set[str]) -> None:
        projected = self._total_bytes + incoming
        if incoming > 0 and projected > self.threshold_bytes:
            logger.info(
                f"Texture memory above cleanup threshold "
                f"({projected / MB:.1f} / {self.threshold_bytes / MB:.1f} MB), evicting"
            )
            self.evict(projected - self.threshold_bytes, exclude)

    def _recharge(self, record: AnimationRecord) -> None:
        committed = record.committed_bytes
        self._total_bytes += committed - record.charged_bytes
        record.charged_bytes = committed
