"""A size-limited buffer that spills to disk once its memory allowance is used."""

from __future__ import annotations

import io
import logging
import os
import tempfile
import threading
from typing import BinaryIO, Protocol

log = logging.getLogger(__name__)

_CHUNK_SIZE = 32 * 1024


class MaximumSizeExceededError(Exception):
    """Raised when writing would take a buffer past its size limit."""

    def __init__(self, message: str = "maximum size exceeded") -> None:
        super().__init__(message)


class WriteAfterReadError(Exception):
    """Raised when writing to a buffer that has already been read from."""

    def __init__(self, message: str = "write after read") -> None:
        super().__init__(message)


class _Writable(Protocol):
    def write(self, data: bytes) -> object: ...


class Buffer:
    """Holds up to ``max_mem_bytes`` in memory and the rest in a temporary file.

    A ``max_bytes`` of zero means there is no overall limit.
    """

    def __init__(self, max_bytes: int = 0, max_mem_bytes: int = 0) -> None:
        self.max_bytes = max_bytes
        self.max_mem_bytes = max_mem_bytes
        self._memory = bytearray()
        self._memory_pos = 0
        self._disk: BinaryIO | None = None
        self._disk_written = 0
        self._overflowed = False
        self._reading = False
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def overflowed(self) -> bool:
        return self._overflowed

    def write(self, data: bytes) -> int:
        if self._reading:
            raise WriteAfterReadError()

        data = bytes(data)
        length = len(data)
        total_written = len(self._memory) + self._disk_written

        if self.max_bytes > 0 and total_written + length > self.max_bytes:
            self._overflowed = True
            raise MaximumSizeExceededError()

        if self._disk is not None:
            return self._write_to_disk(data)

        if len(self._memory) + length <= self.max_mem_bytes:
            self._memory.extend(data)
            return length

        self._create_spill()
        room = max(self.max_mem_bytes - len(self._memory), 0)
        self._memory.extend(data[:room])
        return room + self._write_to_disk(data[room:])

    def read(self, size: int = -1) -> bytes:
        self._start_reading()

        if size is None or size < 0:
            result = bytes(self._memory[self._memory_pos:])
            self._memory_pos = len(self._memory)
            if self._disk is not None:
                result += self._disk.read()
            return result

        result = bytes(self._memory[self._memory_pos:self._memory_pos + size])
        self._memory_pos += len(result)
        if len(result) < size and self._disk is not None:
            result += self._disk.read(size - len(result))
        return result

    def send(self, writer: _Writable) -> None:
        """Copy the remaining buffered content into ``writer``."""
        while chunk := self.read(_CHUNK_SIZE):
            writer.write(chunk)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._discard_spill()

    def __enter__(self) -> Buffer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _write_to_disk(self, data: bytes) -> int:
        assert self._disk is not None
        written = self._disk.write(data)
        self._disk_written += written
        return written

    def _start_reading(self) -> None:
        if not self._reading:
            self._reading = True
            if self._disk is not None:
                self._disk.seek(0)

    def _create_spill(self) -> None:
        try:
            self._disk = tempfile.NamedTemporaryFile(prefix="proxy-buffer-", delete=False)
        except OSError as exc:
            log.error("Buffer: failed to create spill file: %s", exc)
            raise
        log.debug("Buffer: spilling to disk: %s", self._disk.name)

    def _discard_spill(self) -> None:
        if self._disk is None:
            return
        name = self._disk.name
        self._disk.close()
        log.debug("Buffer: removing spill: %s", name)
        try:
            os.remove(name)
        except OSError as exc:
            log.error("Buffer: failed to remove spill %s: %s", name, exc)


def buffered_reader(source: io.RawIOBase | BinaryIO | None, max_bytes: int, max_mem_bytes: int) -> Buffer:
    """Read all of ``source`` into a new Buffer, ready for reading back."""
    buffer = Buffer(max_bytes, max_mem_bytes)
    if source is None:
        return buffer
    try:
        while chunk := source.read(_CHUNK_SIZE):
            buffer.write(chunk)
    except BaseException:
        buffer.close()
        raise
    return buffer


class BufferPool:
    """A pool of reusable fixed-size byte buffers."""

    def __init__(self, buffer_size: int) -> None:
        self.buffer_size = buffer_size
        self._free: list[bytearray] = []
        self._lock = threading.Lock()

    def get(self) -> bytearray:
        with self._lock:
            if self._free:
                return self._free.pop()
        return bytearray(self.buffer_size)

    def put(self, content: bytearray) -> None:
        with self._lock:
            self._free.append(content)