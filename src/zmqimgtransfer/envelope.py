"""Textual envelope codec.

The envelope is a single whitespace-delimited line::

    v1 dimNumber <rank> <dim_0> ... <dim_rank-1> <voxelTypeName> <backendName>

Parsing is kept behind EnvelopeCodec so the chunking and handshake code
never look at the text itself.
"""
from __future__ import annotations

import logging
from typing import Iterator

from zmqimgtransfer.errors import ProtocolViolation
from zmqimgtransfer.messages import PROTOCOL_VERSION, Backend, Envelope, VoxelType

logger = logging.getLogger(__name__)

DIM_NUMBER_MARKER = "dimNumber"


class EnvelopeCodec:
    """Builds and parses image envelopes."""

    version = PROTOCOL_VERSION

    def encode(self, envelope: Envelope) -> str:
        tokens = [self.version, DIM_NUMBER_MARKER, str(envelope.rank)]
        tokens.extend(str(extent) for extent in envelope.dims)
        tokens.append(envelope.voxel_type.wire_name)
        tokens.append(envelope.backend.wire_name)
        return " ".join(tokens)

    def decode(self, message: str | bytes) -> Envelope:
        if isinstance(message, bytes):
            try:
                message = message.decode("utf-8")
            except UnicodeDecodeError:
                raise ProtocolViolation("Envelope is not a text message") from None

        tokens = iter(message.split())
        if not _next_token(tokens, "protocol version").startswith(self.version):
            raise ProtocolViolation(f"Unknown protocol, expecting protocol {self.version}.")
        if not _next_token(tokens, DIM_NUMBER_MARKER).startswith(DIM_NUMBER_MARKER):
            raise ProtocolViolation(f"Incorrect protocol, expecting {DIM_NUMBER_MARKER}.")

        rank = _next_int(tokens, "rank")
        if rank < 1:
            raise ProtocolViolation(f"Incorrect protocol, rank must be positive, got {rank}")
        dims = tuple(_next_int(tokens, f"extent of dimension {i}") for i in range(rank))

        voxel_type = VoxelType.from_wire(_next_token(tokens, "voxel type"))
        backend = Backend.from_wire(_next_token(tokens, "backend type"))
        return Envelope(dims=dims, voxel_type=voxel_type, backend=backend)


def _next_token(tokens: Iterator[str], what: str) -> str:
    try:
        return next(tokens)
    except StopIteration:
        raise ProtocolViolation(f"Truncated envelope, missing {what}") from None


def _next_int(tokens: Iterator[str], what: str) -> int:
    token = _next_token(tokens, what)
    try:
        return int(token)
    except ValueError:
        raise ProtocolViolation(f"Malformed envelope, {what} is not an integer: {token!r}") from None
