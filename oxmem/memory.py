"""Byte-addressed storage backing the memory node."""

from __future__ import annotations

from .protocol import MEM_SIZE, OX_START_ADDR

PAGE_SIZE = 4096
_U64_MASK = (1 << 64) - 1


class Memory:
    """Zero-initialised memory of ``size`` bytes mapped at ``start_offset``.

    Bus addresses are turned into offsets as ``(address - start_offset) % size``
    with 64-bit wrap-around, so the storage mirrors itself across the bus.
    Pages are allocated only once written.
    """

    def __init__(self, size: int = MEM_SIZE, start_offset: int = OX_START_ADDR) -> None:
        if size <= 0:
            raise ValueError("memory size must be positive")
        self.size = size
        self.start_offset = start_offset
        self._pages: dict[int, bytearray] = {}

    def __len__(self) -> int:
        return self.size

    def _offset(self, address: int, length: int) -> int:
        offset = ((address - self.start_offset) & _U64_MASK) % self.size
        if offset + length > self.size:
            raise ValueError(
                f"access of {length} bytes at offset {offset:#x} runs past the end of memory"
            )
        return offset

    def _spans(self, offset: int, length: int):
        """Yield (page, start, count) pieces covering ``length`` bytes at ``offset``."""
        position = offset
        end = offset + length
        while position < end:
            page, start = divmod(position, PAGE_SIZE)
            count = min(PAGE_SIZE - start, end - position)
            yield page, start, count
            position += count

    def write(self, address: int, data: bytes) -> None:
        """Store ``data`` at bus address ``address``."""
        view = memoryview(bytes(data))
        consumed = 0
        for page, start, count in self._spans(self._offset(address, len(view)), len(view)):
            buffer = self._pages.setdefault(page, bytearray(PAGE_SIZE))
            buffer[start : start + count] = view[consumed : consumed + count]
            consumed += count

    def read(self, address: int, size: int) -> bytes:
        """Return ``size`` bytes from bus address ``address``."""
        if size < 0:
            raise ValueError("read size must not be negative")
        out = bytearray()
        for page, start, count in self._spans(self._offset(address, size), size):
            buffer = self._pages.get(page)
            out += buffer[start : start + count] if buffer is not None else bytes(count)
        return bytes(out)


__all__ = ["Memory", "PAGE_SIZE"]