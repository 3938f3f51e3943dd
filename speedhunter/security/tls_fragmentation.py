"""
TLS ClientHello Fragmentation

DPI boxes that classify connections by their ClientHello usually look at the
first TCP segment only. Splitting the first few dozen bytes of the stream
into several small segments, with a pause between them, forces the box to
buffer and reassemble, which many of them do not bother to do.

The fragmenter works on the byte stream, not on parsed TLS records:
- only the first ``minimum_bytes`` of the connection are chunked
  (67 covers the record header, handshake header, random and SNI of a
  typical ClientHello)
- chunk sizes are either fixed or a fixed count of random sizes
- delays before the first chunk and between chunks, optionally jittered
- once the threshold is reached every write goes straight to the socket

Policy string format (all but the first field optional):

    minimumBytes,chunkSizeOrCount,delayBeforeStart,delayBetweenChunks,randomChunks,randomDelays,delayRandomness

Delays use Go duration syntax: ``100ms``, ``1.5s``, ``1m30s``, ``0``.
"""

import logging
import random
import re
import socket
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from speedhunter.core.exceptions import FragmentConfigError, FragmentWriteError

DEFAULT_MINIMUM_BYTES = 67
DEFAULT_FRAGMENT_SIZE = 47
DEFAULT_FRAGMENT_DELAY = 0.1  # seconds

# Upper bound of the random draw used to size chunks in random mode
RANDOM_CHUNK_DRAW_MAX = 1000

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # micro sign
    "μs": 1e-6,  # greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass
class FragmentOptions:
    """Fragmentation policy for the first bytes of a connection."""
    minimum_bytes: int = DEFAULT_MINIMUM_BYTES
    # Chunk size, or chunk count when random_chunks is set
    chunk_size: int = DEFAULT_FRAGMENT_SIZE
    delay_before_start: float = DEFAULT_FRAGMENT_DELAY
    delay_between_chunks: float = DEFAULT_FRAGMENT_DELAY
    random_chunks: bool = False
    random_delays: bool = False
    delay_randomness: float = 0.0


def parse_duration(text: str) -> float:
    """
    Parse a Go-style duration string into seconds.

    A bare ``0`` is the only unit-less value accepted.
    """
    s = text.strip()
    sign = 1.0
    if s and s[0] in "+-":
        if s[0] == "-":
            sign = -1.0
        s = s[1:]
    if s == "0":
        return 0.0
    if not s:
        raise ValueError(f"invalid duration: {text!r}")

    total = 0.0
    pos = 0
    while pos < len(s):
        match = _DURATION_PART.match(s, pos)
        if not match:
            raise ValueError(f"invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def parse_bool(text: str) -> bool:
    """Parse a boolean the way strconv.ParseBool-style flags are written."""
    value = text.strip()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean: {text!r}")


def parse_fragment_options(opts: str) -> FragmentOptions:
    """
    Parse a comma-separated fragmentation policy.

    Raises:
        FragmentConfigError: any present field is malformed, or the chunk
            size/count is not larger than 1
    """
    result = FragmentOptions()
    parts = opts.split(",")

    try:
        result.minimum_bytes = int(parts[0].strip())
    except ValueError:
        raise FragmentConfigError(f"invalid minimum bytes: {parts[0]!r}") from None

    if len(parts) > 1:
        try:
            result.chunk_size = int(parts[1].strip())
        except ValueError:
            raise FragmentConfigError(f"invalid chunk size: {parts[1]}") from None

    if len(parts) > 2:
        try:
            result.delay_before_start = parse_duration(parts[2])
        except ValueError:
            raise FragmentConfigError(f"invalid before start delay: {parts[2]}") from None

    if len(parts) > 3:
        try:
            result.delay_between_chunks = parse_duration(parts[3])
        except ValueError:
            raise FragmentConfigError(f"invalid between chunks delay: {parts[3]}") from None

    if len(parts) > 4:
        try:
            result.random_chunks = parse_bool(parts[4])
        except ValueError:
            raise FragmentConfigError(f"invalid random chunks state: {parts[4]}") from None

    if len(parts) > 5:
        try:
            result.random_delays = parse_bool(parts[5])
        except ValueError:
            raise FragmentConfigError(f"invalid random delays state: {parts[5]}") from None

    if len(parts) > 6:
        try:
            result.delay_randomness = parse_duration(parts[6])
        except ValueError:
            raise FragmentConfigError(f"invalid delay randomness range: {parts[6]}") from None

    if result.chunk_size <= 1:
        raise FragmentConfigError("chunk size/count should be larger than 1")
    return result


def calculate_chunks(total_length: int, options: FragmentOptions,
                     rng: Optional[random.Random] = None) -> List[int]:
    """
    Compute the chunk plan for the first ``total_length`` bytes.

    Fixed mode cuts ``chunk_size`` pieces with the remainder last. Random
    mode draws ``chunk_size`` random weights, scales all but the last one to
    the budget, and gives the last one whatever is left so the plan always
    sums to ``total_length``.
    """
    if not options.random_chunks:
        count, remainder = divmod(total_length, options.chunk_size)
        chunks = [options.chunk_size] * count
        if remainder:
            chunks.append(remainder)
        return chunks

    rng = rng or random
    chunk_count = max(options.chunk_size, 1)
    draws = [rng.randint(1, RANDOM_CHUNK_DRAW_MAX) for _ in range(chunk_count)]
    draw_sum = sum(draws)

    chunks = [draw * total_length // draw_sum for draw in draws[:-1]]
    chunks.append(total_length - sum(chunks))
    return chunks


def is_tls_client_hello(data: bytes) -> bool:
    """Check if data starts with a TLS ClientHello record."""
    if len(data) < 6:
        return False
    # TLS record: 0x16 (handshake), 0x03 0x0X (version)
    # Handshake type: 0x01 (ClientHello)
    return data[0] == 0x16 and data[1] == 0x03 and data[5] == 0x01


class WriterState(Enum):
    """Fragmenting writer lifecycle. Transitions only go forward."""
    FRAGMENTING = "fragmenting"
    PASSTHROUGH = "passthrough"


class SocketSink:
    """Adapts a socket to the writer's sink protocol."""

    def __init__(self, sock: socket.socket):
        self.sock = sock

    def write(self, data: bytes) -> int:
        self.sock.sendall(data)
        return len(data)


class FragmentingWriter:
    """
    Stream writer that chunks the first ``minimum_bytes`` of a connection.

    ``sink`` is anything with ``write(bytes) -> int`` returning how many
    bytes it accepted. A successful ``write`` always reports the full input
    length; a failing sink raises FragmentWriteError with the partial count.
    """

    def __init__(self, sink, options: FragmentOptions,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        self.logger = logging.getLogger(__name__)
        self.sink = sink
        self.options = options
        self._sleep = sleep
        self._rng = rng or random

        self.state = WriterState.FRAGMENTING
        if options.minimum_bytes <= 0:
            self.state = WriterState.PASSTHROUGH
        self.total_written = 0
        self.segments_sent = 0
        self._started = False
        self._chunks: Optional[List[int]] = None
        self._chunk_idx = 0

    def write(self, data: bytes) -> int:
        if not data:
            return 0

        if not self._started:
            self._started = True
            if self.options.delay_before_start > 0:
                self._sleep(self._get_delay(self.options.delay_before_start))

        if self.state is WriterState.PASSTHROUGH:
            return self._forward(data, 0)

        if self._chunks is None:
            budget = min(self.options.minimum_bytes, len(data))
            self._chunks = calculate_chunks(budget, self.options, self._rng)
            if is_tls_client_hello(data):
                self.logger.debug(
                    f"Fragmenting TLS ClientHello: {budget} bytes in {len(self._chunks)} chunks"
                )

        offset = 0
        while offset < len(data) and not self._fragmentation_done():
            remaining = self._chunks[self._chunk_idx]
            if remaining <= 0:
                self._chunk_idx += 1
                continue

            to_write = min(remaining, len(data) - offset)
            written = self._send(data[offset:offset + to_write], offset)
            self._chunks[self._chunk_idx] -= written
            offset += written

            if self._chunks[self._chunk_idx] <= 0:
                self._chunk_idx += 1
                if self._has_pending_chunk() and self.options.delay_between_chunks > 0:
                    self._sleep(self._get_delay(self.options.delay_between_chunks))

        if self._fragmentation_done():
            self._enter_passthrough()

        if self.state is WriterState.PASSTHROUGH:
            offset = self._forward(data, offset)

        return offset

    def _forward(self, data: bytes, offset: int) -> int:
        """Pass the rest of ``data`` through; one write unless the sink takes less."""
        while offset < len(data):
            offset += self._send(data[offset:], offset)
        return offset

    def _send(self, chunk: bytes, consumed: int) -> int:
        """Hand one segment to the sink and account for it."""
        try:
            written = self.sink.write(chunk)
        except OSError as e:
            raise FragmentWriteError(f"fragment write failed: {e}", bytes_written=consumed) from e
        if written <= 0:
            raise FragmentWriteError("sink accepted no bytes", bytes_written=consumed)
        self.total_written += written
        self.segments_sent += 1
        return written

    def _fragmentation_done(self) -> bool:
        return (self.total_written >= self.options.minimum_bytes or
                self._chunk_idx >= len(self._chunks))

    def _has_pending_chunk(self) -> bool:
        return any(size > 0 for size in self._chunks[self._chunk_idx:])

    def _enter_passthrough(self):
        if self.state is WriterState.FRAGMENTING:
            self.state = WriterState.PASSTHROUGH
            self.logger.debug(
                f"Fragmentation finished after {self.total_written} bytes "
                f"in {self.segments_sent} segments"
            )

    def _get_delay(self, delay: float) -> float:
        """Apply jitter to a delay when random delays are enabled."""
        if self.options.random_delays and self.options.delay_randomness > 0:
            spread = self.options.delay_randomness
            return max(0.0, delay + self._rng.uniform(-spread, spread))
        return delay
