"""Splitting flat voxel buffers into transport-safe messages.

Arrays of fewer than ``SINGLE_CHUNK_LIMIT`` elements, and arrays of
one-byte voxels, travel as one message. Any other array is cut into exactly
``W`` chunks, ``W`` being the voxel byte width: ``W-1`` chunks of
``ceil(N/W)`` elements and a last chunk holding the remainder. No chunk is
then longer in bytes than a one-byte array of the same element count.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import zmq

from zmqimgtransfer.errors import ProtocolViolation
from zmqimgtransfer.messages import VoxelType
from zmqimgtransfer.transfer.wait_policy import ConnectionWaiter

logger = logging.getLogger(__name__)

SINGLE_CHUNK_LIMIT = 1024


@dataclass(frozen=True)
class Chunk:
    offset: int
    length: int
    more: bool

    @property
    def stop(self) -> int:
        return self.offset + self.length


def plan_chunks(element_count: int, byte_width: int, more_coming: bool) -> List[Chunk]:
    """Partition ``element_count`` elements into the chunks sent on the wire.

    Every chunk except the last is flagged ``more``; the last one carries
    ``more_coming``, the caller's promise that another message follows.
    """
    if element_count < 0:
        raise ValueError(f"element_count must be >= 0, got {element_count}")
    if byte_width < 1:
        raise ValueError(f"byte_width must be >= 1, got {byte_width}")

    if element_count < SINGLE_CHUNK_LIMIT or byte_width == 1:
        return [Chunk(0, element_count, more_coming)]

    first_len = -(-element_count // byte_width)
    last_len = element_count - (byte_width - 1) * first_len
    chunks = [Chunk(p * first_len, first_len, True) for p in range(byte_width - 1)]
    chunks.append(Chunk((byte_width - 1) * first_len, last_len, more_coming))
    return chunks


class ChunkedArrayChannel:
    """Moves one flat buffer between an array and a socket, chunk by chunk.

    A channel belongs to a single image transfer. Its auxiliary wire buffer
    is reused between the chunks of one ``send`` call only.
    """

    def __init__(
        self,
        socket,
        voxel_type: VoxelType,
        waiter: ConnectionWaiter,
        timeout: float,
    ) -> None:
        self._socket = socket
        self._voxel_type = voxel_type
        self._waiter = waiter
        self._timeout = timeout

    def send(self, buffer: np.ndarray, more_coming: bool) -> int:
        """Send ``buffer``; returns the number of chunks put on the wire."""
        chunks = plan_chunks(buffer.size, self._voxel_type.byte_width, more_coming)
        aux: Optional[np.ndarray] = None
        for chunk in chunks:
            if aux is None or aux.size < chunk.length:
                aux = np.empty(chunk.length, dtype=self._voxel_type.wire_dtype)
            view = aux[: chunk.length]
            view[...] = buffer[chunk.offset : chunk.stop]
            # copy=True: zmq takes its own copy, so aux can be refilled
            self._socket.send(view, zmq.SNDMORE if chunk.more else 0, copy=True)
        logger.debug(
            "sent %s elements of %s in %s chunk(s), more_coming=%s",
            buffer.size, self._voxel_type.name, len(chunks), more_coming,
        )
        return len(chunks)

    def receive(self, buffer: np.ndarray) -> int:
        """Fill ``buffer`` from the socket; returns the number of chunks read.

        Each chunk is expected as a continuation part of the current
        multi-part message.
        """
        chunks = plan_chunks(buffer.size, self._voxel_type.byte_width, False)
        received = 0
        for chunk in chunks:
            self._waiter.wait_for_more(self._socket, self._timeout)
            frame = self._socket.recv(copy=False)
            nbytes = len(frame)
            if nbytes != chunk.length * self._voxel_type.byte_width:
                raise ProtocolViolation(
                    f"Chunk at offset {chunk.offset} carries {nbytes} bytes, "
                    f"expected {chunk.length} x {self._voxel_type.byte_width} bytes"
                )
            if chunk.length:
                data = np.frombuffer(frame.buffer, dtype=self._voxel_type.wire_dtype)
                buffer[chunk.offset : chunk.stop] = data
            received += chunk.length
        if received != buffer.size:
            raise ProtocolViolation(f"Received {received} elements, expected {buffer.size}")
        return len(chunks)
