"""Single-image transfers with a socket scoped to one call.

Unlike TransferSession these helpers exchange no ``v0`` session lines: the
image envelope (or, when serving, the ``can get`` request) is the first
message on the wire.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import numpy as np
import zmq

from zmqimgtransfer.config import TransferConfig
from zmqimgtransfer.errors import ConnectionTimeout, ProtocolViolation
from zmqimgtransfer.messages import Backend, HandshakeToken, Metadata
from zmqimgtransfer.payload import ArrayPayload
from zmqimgtransfer.progress import ProgressCallback, ProgressReporter, as_reporter
from zmqimgtransfer.transfer.image_codec import ImageCodec, ReceivedImage
from zmqimgtransfer.transport import (
    close_socket,
    create_pair_socket,
    get_bind_url,
    normalize_peer_address,
    transport_errors,
)

logger = logging.getLogger(__name__)


@contextmanager
def _pair_socket(
    endpoint: str,
    bind: bool,
    actor: str,
    config: TransferConfig,
    reporter: ProgressReporter,
) -> Iterator[zmq.Socket]:
    reporter.info(f"{actor} started")
    context = zmq.Context()
    socket = None
    try:
        with transport_errors(actor):
            socket = create_pair_socket(context, config)
            if bind:
                socket.bind(endpoint)
            else:
                socket.connect(endpoint)
            yield socket
        reporter.info(f"{actor} finished")
    finally:
        reporter.info(f"{actor} cleaning")
        try:
            close_socket(socket, config)
        finally:
            context.term()


def _payload(image, backend: Backend) -> ArrayPayload:
    if isinstance(image, ArrayPayload):
        payload = image
    else:
        payload = ArrayPayload.from_array(np.asarray(image), backend)
    payload.validate_for_transfer()
    return payload


def send_image(
    image,
    address: str,
    timeout: float,
    progress: Optional[ProgressCallback] = None,
    *,
    name: str = "",
    backend: Backend = Backend.CONTIGUOUS,
    config: Optional[TransferConfig] = None,
) -> None:
    """Push one image to a peer that is receiving it."""
    config = config or TransferConfig()
    reporter = as_reporter(progress)
    payload = _payload(image, backend)
    with _pair_socket(normalize_peer_address(address), False, "sender", config, reporter) as socket:
        ImageCodec(socket, config, reporter).send_image(payload, Metadata(name=name), timeout)


def receive_image(
    port: int,
    timeout: float,
    progress: Optional[ProgressCallback] = None,
    *,
    config: Optional[TransferConfig] = None,
) -> ReceivedImage:
    """Listen on ``port`` for one pushed image."""
    config = config or TransferConfig()
    reporter = as_reporter(progress)
    with _pair_socket(get_bind_url(port, config), True, "receiver", config, reporter) as socket:
        codec = ImageCodec(socket, config, reporter)
        reporter.info("receiver waiting")
        header = codec.waiter.receive_within(socket, timeout, "receiver")
        if header is None:
            raise ConnectionTimeout("Image not transferred, sender has not connected yet.")
        return codec.receive_image(header)


def serve_image(
    image,
    port: int,
    timeout: float,
    progress: Optional[ProgressCallback] = None,
    *,
    name: str = "",
    backend: Backend = Backend.CONTIGUOUS,
    config: Optional[TransferConfig] = None,
) -> None:
    """Wait on ``port`` for a ``can get`` request, then send one image."""
    config = config or TransferConfig()
    reporter = as_reporter(progress)
    payload = _payload(image, backend)
    with _pair_socket(get_bind_url(port, config), True, "server", config, reporter) as socket:
        codec = ImageCodec(socket, config, reporter)
        reporter.info("server waiting for initial request")
        request = codec.waiter.receive_within(socket, timeout, "server")
        if request is None:
            raise ConnectionTimeout("Image not transferred, receiver has not connected yet.")
        if not HandshakeToken.CAN_GET.matches(request.decode("utf-8", errors="replace")):
            raise ProtocolViolation("Protocol error, expected initial ping from the receiver.")
        codec.send_image(payload, Metadata(name=name), timeout)


def request_image(
    address: str,
    timeout: float,
    progress: Optional[ProgressCallback] = None,
    *,
    config: Optional[TransferConfig] = None,
) -> ReceivedImage:
    """Ask a serving peer for its image and receive it."""
    config = config or TransferConfig()
    reporter = as_reporter(progress)
    with _pair_socket(normalize_peer_address(address), False, "receiver", config, reporter) as socket:
        codec = ImageCodec(socket, config, reporter)
        reporter.info("receiver initial request sent")
        socket.send_string(HandshakeToken.CAN_GET.value)
        reporter.info("receiver waiting")
        header = codec.waiter.receive_within(socket, timeout, "receiver")
        if header is None:
            raise ConnectionTimeout("Image not transferred, server has not replied yet.")
        return codec.receive_image(header)
