"""Public API for zmqimgtransfer."""

from __future__ import annotations

__version__ = "0.1.0"

from zmqimgtransfer.config import TransferConfig, TransportMode, coerce_transport_mode
from zmqimgtransfer.envelope import EnvelopeCodec
from zmqimgtransfer.errors import (
    ConnectionTimeout,
    ProtocolViolation,
    SessionClosed,
    TransferError,
    TransportFault,
    UnsupportedBackendError,
)
from zmqimgtransfer.messages import (
    Backend,
    Envelope,
    HandshakeToken,
    Metadata,
    SessionHint,
    VoxelType,
)
from zmqimgtransfer.payload import ArrayPayload
from zmqimgtransfer.progress import (
    LoggingProgressCallback,
    ProgressCallback,
    ProgressReporter,
)
from zmqimgtransfer.transfer import (
    Chunk,
    ChunkedArrayChannel,
    ConnectionWaiter,
    ImageCodec,
    ReceivedImage,
    SessionState,
    TransferRole,
    TransferSession,
    WaitPolicy,
    plan_chunks,
    receive_image,
    request_image,
    send_image,
    serve_image,
)
from zmqimgtransfer.transport import (
    get_bind_url,
    get_ipc_socket_path,
    get_zmq_transport_url,
    normalize_peer_address,
    remove_ipc_socket,
)

__all__ = [
    "TransferConfig",
    "TransportMode",
    "coerce_transport_mode",
    "EnvelopeCodec",
    "ConnectionTimeout",
    "ProtocolViolation",
    "SessionClosed",
    "TransferError",
    "TransportFault",
    "UnsupportedBackendError",
    "Backend",
    "Envelope",
    "HandshakeToken",
    "Metadata",
    "SessionHint",
    "VoxelType",
    "ArrayPayload",
    "LoggingProgressCallback",
    "ProgressCallback",
    "ProgressReporter",
    # Transfer protocol
    "Chunk",
    "ChunkedArrayChannel",
    "ConnectionWaiter",
    "ImageCodec",
    "ReceivedImage",
    "SessionState",
    "TransferRole",
    "TransferSession",
    "WaitPolicy",
    "plan_chunks",
    "receive_image",
    "request_image",
    "send_image",
    "serve_image",
    "get_bind_url",
    "get_ipc_socket_path",
    "get_zmq_transport_url",
    "normalize_peer_address",
    "remove_ipc_socket",
]
