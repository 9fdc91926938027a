"""Transfer protocol layers: waiting, chunking, per-image codec, sessions."""
from __future__ import annotations

from zmqimgtransfer.transfer.chunking import Chunk, ChunkedArrayChannel, plan_chunks
from zmqimgtransfer.transfer.image_codec import ImageCodec, ReceivedImage
from zmqimgtransfer.transfer.oneshot import (
    receive_image,
    request_image,
    send_image,
    serve_image,
)
from zmqimgtransfer.transfer.session import SessionState, TransferRole, TransferSession
from zmqimgtransfer.transfer.wait_policy import ConnectionWaiter, WaitPolicy

__all__ = [
    "Chunk",
    "ChunkedArrayChannel",
    "plan_chunks",
    "ImageCodec",
    "ReceivedImage",
    "receive_image",
    "request_image",
    "send_image",
    "serve_image",
    "SessionState",
    "TransferRole",
    "TransferSession",
    "ConnectionWaiter",
    "WaitPolicy",
]
