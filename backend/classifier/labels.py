"""
Class-index to label-name table.

Labels are kept as (start, end) spans into the staging buffer they were
parsed from. A label only becomes an independent string when it is looked
up, so lookups must happen before the staging buffer is released.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from core.buffers import BufferArena, OwnedBuffer
from core.errors import ClassifierError, FormatError, ResourceIOError
from core.models import LABEL_BUFFER_BYTES, MAX_LABELS
from logger_config import get_logger

logger = get_logger("labels")

_NEWLINE = 0x0A


class LabelTable:
    """
    Ordered label sequence; index = class id.

    Example:
        table = LabelTable.parse(b"cat\\ndog\\n")
        table[1]  # 'dog'
    """

    def __init__(self, buffer: bytes | bytearray | memoryview, spans: list[tuple[int, int]]):
        self._buffer = memoryview(buffer)
        self._spans = spans
        self._owner: OwnedBuffer | None = None

    @classmethod
    def parse(
        cls, buffer: str | bytes | bytearray | memoryview, max_count: int = MAX_LABELS
    ) -> LabelTable:
        """
        Split a newline-delimited blob into labels.

        Empty lines are skipped. Entries past ``max_count`` are dropped
        silently. A blob with no entries raises FormatError.
        """
        if isinstance(buffer, str):
            buffer = buffer.encode("utf-8")
        data = memoryview(buffer)
        raw = data.tobytes()
        spans: list[tuple[int, int]] = []
        start = 0
        end_of_data = len(raw)

        while start < end_of_data and len(spans) < max_count:
            end = raw.find(_NEWLINE, start)
            if end == -1:
                end = end_of_data
            if end > start:
                spans.append((start, end))
            start = end + 1

        if not spans:
            raise FormatError("Label source contains no entries")

        return cls(data, spans)

    @classmethod
    def read(
        cls,
        path: str | Path,
        arena: BufferArena,
        max_count: int = MAX_LABELS,
        max_bytes: int = LABEL_BUFFER_BYTES,
    ) -> tuple[LabelTable, OwnedBuffer]:
        """
        Stage at most ``max_bytes`` of a labels file and parse it.

        Returns the table and the staging buffer backing it. The caller owns
        the buffer and must release it after its last lookup.
        """
        path = Path(path)
        staging = arena.allocate(max_bytes, "labels")
        try:
            with open(path, "rb") as f:
                nread = f.readinto(staging.view)
            if not nread:
                raise FormatError(f"Labels file {path} is empty")
            table = cls.parse(staging.view[:nread], max_count)
        except OSError as e:
            staging.release()
            raise ResourceIOError(f"Failed to read labels file {path}: {e}") from e
        except ClassifierError:
            staging.release()
            raise

        table._owner = staging
        logger.info(f"Read labels, # of labels: {len(table)}")
        return table, staging

    def __len__(self) -> int:
        return len(self._spans)

    def __getitem__(self, index: int) -> str:
        if not 0 <= index < len(self._spans):
            raise IndexError(f"label index {index} out of range ({len(self._spans)} labels)")
        if self._owner is not None and self._owner.released:
            raise RuntimeError("Label table read after its staging buffer was released")
        start, end = self._spans[index]
        return bytes(self._buffer[start:end]).decode("utf-8", errors="replace")

    def __iter__(self) -> Iterator[str]:
        for i in range(len(self._spans)):
            yield self[i]

    def to_list(self) -> list[str]:
        return list(self)
