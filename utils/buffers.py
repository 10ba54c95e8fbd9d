"""Reusable byte buffers for request encoding and response decoding."""
import io
from contextlib import contextmanager
from typing import Iterator, List


class BufferPool:
    """
    Bounded pool of BytesIO buffers.
    Buffers are always reset before they go back into the pool, and buffers
    that grew past max_buffer_size are dropped instead of being kept.
    """

    def __init__(self, max_idle: int = 16, max_buffer_size: int = 64 * 1024) -> None:
        self.max_idle = max_idle
        self.max_buffer_size = max_buffer_size
        self._idle: List[io.BytesIO] = []

    def __len__(self) -> int:
        return len(self._idle)

    @contextmanager
    def buffer(self) -> Iterator[io.BytesIO]:
        """Lend an empty buffer for the duration of the with-block."""
        buf = self._idle.pop() if self._idle else io.BytesIO()
        try:
            yield buf
        finally:
            self._release(buf)

    def _release(self, buf: io.BytesIO) -> None:
        size = buf.seek(0, io.SEEK_END)
        if size > self.max_buffer_size or len(self._idle) >= self.max_idle:
            return
        buf.seek(0)
        buf.truncate(0)
        self._idle.append(buf)
