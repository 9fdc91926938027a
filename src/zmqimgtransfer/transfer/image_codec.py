"""Per-image exchange: envelope, ready, metadata, voxel chunks, done."""
from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import numpy as np
import zmq

from zmqimgtransfer.config import TransferConfig
from zmqimgtransfer.envelope import EnvelopeCodec
from zmqimgtransfer.errors import ProtocolViolation
from zmqimgtransfer.messages import (
    Backend,
    Envelope,
    HandshakeToken,
    Metadata,
    expect_token,
)
from zmqimgtransfer.payload import ArrayPayload
from zmqimgtransfer.progress import ProgressReporter
from zmqimgtransfer.transfer.chunking import ChunkedArrayChannel
from zmqimgtransfer.transfer.wait_policy import ConnectionWaiter

logger = logging.getLogger(__name__)


class ReceivedImage(NamedTuple):
    envelope: Envelope
    metadata: Metadata
    payload: ArrayPayload

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def array(self) -> np.ndarray:
        return self.payload.to_array()


class ImageCodec:
    """Runs the ordered per-image exchange on an already connected socket.

    Sender side::

        envelope  ->
                  <- ready
        metadata  ->  (SNDMORE)
        chunks... ->  (SNDMORE on all but the very last)
                  <- done

    The receiver mirrors it. ``handshake_timeout`` bounds the wait for
    ``ready``; every later wait uses the connection-broken timeout of the
    config.
    """

    def __init__(
        self,
        socket,
        config: Optional[TransferConfig] = None,
        reporter: Optional[ProgressReporter] = None,
        envelope_codec: Optional[EnvelopeCodec] = None,
    ) -> None:
        self._socket = socket
        self._config = config or TransferConfig()
        self._reporter = reporter or ProgressReporter()
        self._envelopes = envelope_codec or EnvelopeCodec()
        self._waiter = ConnectionWaiter(self._config.wait_policy(), self._reporter)

    @property
    def waiter(self) -> ConnectionWaiter:
        return self._waiter

    # ------------------------------------------------------------------
    def send_image(self, payload: ArrayPayload, metadata: Metadata, handshake_timeout: float) -> None:
        payload.validate_for_transfer()
        header = self._envelopes.encode(payload.envelope())
        metadata_line = metadata.encode()

        # complete message: the receiver must be able to answer right away
        self._reporter.info(f"sending header: {header}")
        self._socket.send_string(header)
        self._waiter.expect_message(
            self._socket, handshake_timeout, "the initial confirmation from the receiver", "sender"
        )
        expect_token(self._recv_text(), HandshakeToken.READY, "initial confirmation from the receiver")

        self._reporter.info("sending the image...")
        self._socket.send_string(metadata_line, zmq.SNDMORE)
        self._send_buffers(payload)

        self._waiter.expect_message(
            self._socket,
            self._config.connection_broken_timeout,
            "the final confirmation from the receiver",
            "sender",
        )
        expect_token(self._recv_text(), HandshakeToken.DONE, "final confirmation from the receiver")
        self._reporter.info("sending finished...")

    def receive_image(self, header) -> ReceivedImage:
        if isinstance(header, bytes):
            header = header.decode("utf-8", errors="replace")
        self._reporter.info(f"received header: {header}")
        envelope = self._envelopes.decode(header)
        if envelope.is_empty:
            raise ProtocolViolation("Refusing to transfer an empty image")
        payload = ArrayPayload.allocate(envelope)

        self._socket.send_string(HandshakeToken.READY.value)
        self._reporter.info("receiving the image...")

        self._waiter.expect_message(
            self._socket, self._config.connection_broken_timeout, "the metadata part"
        )
        metadata = Metadata.decode(self._recv_text())
        self._receive_buffers(payload)

        self._socket.send_string(HandshakeToken.DONE.value)
        self._reporter.info("receiving finished...")
        return ReceivedImage(envelope=envelope, metadata=metadata, payload=payload)

    # ------------------------------------------------------------------
    def _channel(self, payload: ArrayPayload) -> ChunkedArrayChannel:
        return ChunkedArrayChannel(
            self._socket,
            payload.voxel_type,
            self._waiter,
            self._config.connection_broken_timeout,
        )

    def _send_buffers(self, payload: ArrayPayload) -> None:
        channel = self._channel(payload)
        if payload.backend is Backend.CONTIGUOUS:
            channel.send(payload.buffers[0], more_coming=False)
            return
        last = len(payload.buffers) - 1
        for index, plane in enumerate(payload.buffers):
            channel.send(plane, more_coming=index < last)

    def _receive_buffers(self, payload: ArrayPayload) -> None:
        channel = self._channel(payload)
        for buffer in payload.buffers:
            channel.receive(buffer)

    def _recv_text(self) -> str:
        try:
            return self._socket.recv_string()
        except UnicodeDecodeError:
            raise ProtocolViolation("Protocol error, expected a text message, got binary data") from None
