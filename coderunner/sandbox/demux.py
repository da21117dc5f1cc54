"""Decoder for Docker's multiplexed stdout/stderr stream.

Without a TTY, Docker frames every write as an 8-byte header followed by the
payload::

    [stream, 0, 0, 0, size(4 bytes, big-endian)] payload...

Stream 1 is stdout and 2 is stderr. Stream 0 (stdin echo) and any other tag
are dropped.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

HEADER = struct.Struct(">BxxxL")
HEADER_SIZE = HEADER.size


class StreamType(IntEnum):
    STDIN = 0
    STDOUT = 1
    STDERR = 2


@dataclass(frozen=True, slots=True)
class Frame:
    stream: StreamType
    payload: bytes


@dataclass(frozen=True, slots=True)
class DemuxResult:
    """Concatenated payloads per stream; ``None`` when no frame carried it."""

    stdout: bytes | None = None
    stderr: bytes | None = None


def parse_frames(buffer: bytes) -> tuple[list[Frame], int]:
    """Decode every complete frame at the start of ``buffer``.

    Returns the stdout/stderr frames in stream order and the number of bytes
    consumed. Decoding stops at the first frame whose header or payload is
    incomplete; nothing past ``len(buffer)`` is read.
    """
    frames: list[Frame] = []
    offset = 0
    view = memoryview(buffer)
    while offset + HEADER_SIZE <= len(buffer):
        tag, size = HEADER.unpack_from(buffer, offset)
        end = offset + HEADER_SIZE + size
        if end > len(buffer):
            break
        if tag in (StreamType.STDOUT, StreamType.STDERR):
            frames.append(Frame(StreamType(tag), bytes(view[offset + HEADER_SIZE:end])))
        offset = end
    return frames, offset


def demux(chunk: bytes) -> DemuxResult:
    """Split one chunk of complete frames into stdout and stderr bytes.

    A trailing partial frame is ignored; use ``StreamDemuxer`` when frames
    may straddle chunk boundaries.
    """
    frames, _ = parse_frames(chunk)
    stdout = [f.payload for f in frames if f.stream is StreamType.STDOUT]
    stderr = [f.payload for f in frames if f.stream is StreamType.STDERR]
    return DemuxResult(
        stdout=b"".join(stdout) if stdout else None,
        stderr=b"".join(stderr) if stderr else None,
    )


class StreamDemuxer:
    """Incremental decoder that keeps a split frame until the rest arrives."""

    def __init__(self) -> None:
        self._residual = b""

    @property
    def pending(self) -> int:
        """Bytes held back waiting for the rest of a frame."""
        return len(self._residual)

    def feed(self, chunk: bytes) -> list[Frame]:
        buffer = self._residual + chunk if self._residual else chunk
        frames, consumed = parse_frames(buffer)
        self._residual = buffer[consumed:]
        return frames
