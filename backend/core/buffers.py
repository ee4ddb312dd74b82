"""
Owned staging buffers.

A BufferArena hands out OwnedBuffer objects and remembers which ones are
still live, so a run can prove it released everything it acquired.
"""

from __future__ import annotations

from logger_config import get_logger

from .errors import AllocationError

logger = get_logger("buffers")


class OwnedBuffer:
    """A writable byte buffer with a single owner and a one-shot release."""

    def __init__(self, arena: BufferArena, name: str, size: int):
        self.name = name
        self.size = size
        self._arena = arena
        self._data: bytearray | None = bytearray(size)

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def view(self) -> memoryview:
        """Writable view over the whole buffer."""
        if self._data is None:
            raise RuntimeError(f"Buffer '{self.name}' used after release")
        return memoryview(self._data)

    def release(self):
        """Give the memory back. Must be called exactly once."""
        if self._data is None:
            raise RuntimeError(f"Buffer '{self.name}' released twice")
        # Drop the reference rather than resizing: numpy views may still exist
        self._data = None
        self._arena._forget(self)

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"OwnedBuffer({self.name!r}, size={self.size}, {state})"


class BufferArena:
    """
    Allocator tracking live OwnedBuffers.

    Args:
        limit_bytes: Maximum bytes live at once. None means unlimited.
    """

    def __init__(self, limit_bytes: int | None = None):
        self.limit_bytes = limit_bytes
        self._live: dict[int, OwnedBuffer] = {}

    def allocate(self, size: int, name: str) -> OwnedBuffer:
        if size < 0:
            raise AllocationError(f"Cannot allocate {size} bytes for {name}")
        if self.limit_bytes is not None and self.live_bytes + size > self.limit_bytes:
            raise AllocationError(
                f"Allocating {size} bytes for {name} exceeds arena limit of {self.limit_bytes}"
            )
        try:
            buf = OwnedBuffer(self, name, size)
        except MemoryError as e:
            raise AllocationError(f"Out of memory allocating {size} bytes for {name}") from e

        self._live[id(buf)] = buf
        logger.debug(f"Allocated {name} ({size} bytes)")
        return buf

    def _forget(self, buf: OwnedBuffer):
        self._live.pop(id(buf), None)
        logger.debug(f"Released {buf.name} ({buf.size} bytes)")

    @property
    def live(self) -> list[str]:
        """Names of buffers not yet released, oldest first."""
        return [buf.name for buf in self._live.values()]

    @property
    def live_bytes(self) -> int:
        return sum(buf.size for buf in self._live.values())
