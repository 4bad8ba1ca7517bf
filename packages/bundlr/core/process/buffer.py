"""Thread-safe capped output buffer and the stream reader that fills it."""

from __future__ import annotations

import threading
from typing import BinaryIO

READ_CHUNK = 64 * 1024


class CappedBuffer:
    """Byte buffer that stops growing at ``cap`` but keeps counting.

    Written by one reader thread, read by the runner thread after the reader
    finished (or the grace period ran out).
    """

    def __init__(self, cap: int) -> None:
        self._cap = cap
        self._chunks: list[bytes] = []
        self._stored = 0
        self._total = 0
        self._lock = threading.Lock()

    def append(self, data: bytes) -> None:
        with self._lock:
            self._total += len(data)
            room = self._cap - self._stored
            if room <= 0:
                return
            if len(data) > room:
                data = data[:room]
            self._chunks.append(data)
            self._stored += len(data)

    @property
    def total_length(self) -> int:
        """Bytes written by the child, including discarded ones."""
        with self._lock:
            return self._total

    @property
    def truncated(self) -> bool:
        with self._lock:
            return self._total > self._stored

    def getvalue(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)

    def text(self, encoding: str = "utf-8") -> str:
        return self.getvalue().decode(encoding, errors="replace")


class StreamReader(threading.Thread):
    """Daemon thread draining one pipe into a CappedBuffer until EOF.

    The reader owns the stream and closes it when it finishes, so the runner
    never closes a pipe another thread may still be blocked on.
    """

    def __init__(self, stream: BinaryIO, buffer: CappedBuffer, name: str) -> None:
        super().__init__(name=name, daemon=True)
        self._stream = stream
        self._buffer = buffer
        self.error: OSError | None = None

    def run(self) -> None:
        read = getattr(self._stream, "read1", self._stream.read)
        try:
            while True:
                chunk = read(READ_CHUNK)
                if not chunk:
                    break
                self._buffer.append(chunk)
        except (OSError, ValueError) as e:
            # ValueError: stream closed underneath us during interpreter teardown
            self.error = e if isinstance(e, OSError) else OSError(str(e))
        finally:
            try:
                self._stream.close()
            except OSError:
                pass
