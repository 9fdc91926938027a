"""Multi-image transfer sessions over one ZeroMQ PAIR socket."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

import numpy as np
import zmq

from zmqimgtransfer.config import TransferConfig
from zmqimgtransfer.errors import ConnectionTimeout, ProtocolViolation, SessionClosed
from zmqimgtransfer.messages import Backend, HandshakeToken, Metadata, SessionHint
from zmqimgtransfer.payload import ArrayPayload
from zmqimgtransfer.progress import ProgressCallback, as_reporter
from zmqimgtransfer.transfer.image_codec import ImageCodec, ReceivedImage
from zmqimgtransfer.transfer.wait_policy import ConnectionWaiter
from zmqimgtransfer.transport import (
    close_socket,
    create_pair_socket,
    get_bind_url,
    get_zmq_transport_url,
    normalize_peer_address,
    transport_errors,
)

logger = logging.getLogger(__name__)

DEFAULT_HANDSHAKE_TIMEOUT = 60.0


class TransferRole(Enum):
    """Connection topology of a session."""
    SEND = "send"
    RECEIVE = "receive"
    SERVE = "serve"
    REQUEST = "request"

    @property
    def sends_images(self) -> bool:
        return self in (TransferRole.SEND, TransferRole.SERVE)

    @property
    def binds(self) -> bool:
        return self in (TransferRole.RECEIVE, TransferRole.SERVE)

    @property
    def actor(self) -> str:
        return {
            TransferRole.SEND: "sender",
            TransferRole.RECEIVE: "receiver",
            TransferRole.SERVE: "server",
            TransferRole.REQUEST: "receiver",
        }[self]


class SessionState(Enum):
    IDLE = "idle"
    OPEN = "open"
    CLOSED = "closed"


class TransferSession:
    """Streams images one per call over a single connection.

    The first transfer call opens the socket (and, for SERVE/REQUEST, runs
    the ``can get`` exchange); later calls reuse it. Every image is preceded
    by a ``v0 expect <K> images`` line. Sending sessions must finish with
    :meth:`hang_up_and_close`; receiving sessions learn from the line that
    follows each image whether another one is coming, see :meth:`has_next`.

    Any error during a call closes the session for good; build a new one to
    retry. Sessions are context managers and release their socket on exit.
    """

    def __init__(
        self,
        role: TransferRole,
        *,
        address: Optional[str] = None,
        port: Optional[int] = None,
        timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        expected_images: int = 0,
        config: Optional[TransferConfig] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._role = TransferRole(role)
        self._config = config or TransferConfig()
        if self._role.binds:
            self._port = self._config.default_port if port is None else int(port)
            # the IPC directory is created when the socket binds
            self._endpoint = get_zmq_transport_url(
                self._port, host=self._config.bind_host, config=self._config
            )
        else:
            if not address:
                raise ValueError(f"{self._role.name} session needs a peer address")
            self._port = None
            self._endpoint = normalize_peer_address(address)
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        if expected_images < 0:
            raise ValueError(f"expected_images must be >= 0, got {expected_images}")

        self._timeout = float(timeout)
        self._expected_images = int(expected_images)
        self._reporter = as_reporter(progress)
        self._waiter = ConnectionWaiter(self._config.wait_policy(), self._reporter)

        self._state = SessionState.IDLE
        self._context: Optional[zmq.Context] = None
        self._socket: Optional[zmq.Socket] = None
        self._codec: Optional[ImageCodec] = None
        self._all_transferred = False
        self._images_transferred = 0

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------
    @classmethod
    def sender(cls, address: str, expected_images: int = 0, **kwargs) -> "TransferSession":
        return cls(TransferRole.SEND, address=address, expected_images=expected_images, **kwargs)

    @classmethod
    def receiver(cls, port: Optional[int] = None, **kwargs) -> "TransferSession":
        return cls(TransferRole.RECEIVE, port=port, **kwargs)

    @classmethod
    def server(cls, port: Optional[int] = None, expected_images: int = 0, **kwargs) -> "TransferSession":
        return cls(TransferRole.SERVE, port=port, expected_images=expected_images, **kwargs)

    @classmethod
    def requester(cls, address: str, **kwargs) -> "TransferSession":
        return cls(TransferRole.REQUEST, address=address, **kwargs)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def role(self) -> TransferRole:
        return self._role

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def images_transferred(self) -> int:
        return self._images_transferred

    def get_expected_image_count(self) -> int:
        """Most recent image-count hint; not decremented per image."""
        return self._expected_images

    def has_next(self) -> bool:
        """False once the sender hung up, went silent, or the session died."""
        return not self._all_transferred and self._state is not SessionState.CLOSED

    # ------------------------------------------------------------------
    # Sending side
    # ------------------------------------------------------------------
    def send_image(
        self,
        image,
        name: Optional[str] = None,
        *,
        backend: Backend = Backend.CONTIGUOUS,
        metadata: Optional[Metadata] = None,
    ) -> None:
        """Send one numpy array (or prepared ArrayPayload) to the peer."""
        self._ensure_not_closed()
        actor = self._role.actor
        with self._guard():
            self._require_role("sending", TransferRole.SEND, TransferRole.SERVE)
            if isinstance(image, ArrayPayload):
                payload = image
            else:
                payload = ArrayPayload.from_array(np.asarray(image), backend)
            # nothing goes on the wire for an image that cannot be sent
            payload.validate_for_transfer()
            if metadata is None:
                metadata = Metadata(name=name or "")

            self._reporter.info(f"{actor} started")
            if self._socket is None:
                self._open()

            hint = SessionHint.expect(self._expected_images).encode()
            self._reporter.info(f"sending header: {hint}")
            self._socket.send_string(hint)
            self._codec.send_image(payload, metadata, self._timeout)

            self._images_transferred += 1
            self._reporter.image_done(self._images_transferred, self._expected_images)
            self._reporter.info(f"{actor} finished")

    def hang_up_and_close(self) -> None:
        """Tell the receiving peer that no more images follow, then close."""
        self._ensure_not_closed()
        try:
            with self._guard():
                self._require_role("signalling the last image", TransferRole.SEND, TransferRole.SERVE)
                if self._socket is None:
                    raise ProtocolViolation("no socket opened, nothing was sent yet")
                self._reporter.info(f"{self._role.actor} hanging up")
                self._socket.send_string(SessionHint.hang_up().encode())
                self._reporter.set_progress(1.0)
        finally:
            self._tear_down()

    # ------------------------------------------------------------------
    # Receiving side
    # ------------------------------------------------------------------
    def receive_image(self) -> Optional[ReceivedImage]:
        """Receive the next image.

        Returns None only when the sender hangs up before sending any image.
        """
        self._ensure_not_closed()
        actor = self._role.actor
        with self._guard():
            self._require_role("receiving", TransferRole.RECEIVE, TransferRole.REQUEST)
            self._reporter.info(f"{actor} started")

            if self._socket is None:
                self._open()
                self._reporter.info(f"{actor} waiting for first v0 header")
                first = self._waiter.receive_within(self._socket, self._timeout, actor)
                if first is None:
                    raise ConnectionTimeout("Image not transferred, sender has not connected yet.")
                if self._apply_hint(first).hangup:
                    self._finish_stream()
                    return None

            header = self._waiter.receive_within(self._socket, self._timeout, actor)
            if header is None:
                raise ConnectionTimeout("Image not transferred, sender announced it but never sent it.")
            received = self._codec.receive_image(header)
            self._images_transferred += 1
            self._reporter.image_done(self._images_transferred, self._expected_images)

            # the next v0 line means another image is already on its way
            self._reporter.info(f"{actor} waiting for next v0 header")
            following = self._waiter.receive_within(self._socket, self._timeout, actor)
            if following is None or self._apply_hint(following).hangup:
                self._finish_stream()
            self._reporter.info(f"{actor} finished")
            return received

    def __iter__(self) -> Iterator[ReceivedImage]:
        while self.has_next():
            received = self.receive_image()
            if received is not None:
                yield received

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Release the socket without any goodbye message."""
        self._tear_down()

    def __enter__(self) -> "TransferSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._tear_down()

    def __repr__(self) -> str:
        return (
            f"TransferSession(role={self._role.name}, endpoint={self._endpoint!r}, "
            f"state={self._state.name}, images={self._images_transferred})"
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _open(self) -> None:
        actor = self._role.actor
        self._context = zmq.Context()
        self._socket = create_pair_socket(self._context, self._config)
        self._state = SessionState.OPEN
        self._codec = ImageCodec(self._socket, self._config, self._reporter)
        self._reporter.set_progress(0.0)

        if self._role.binds:
            self._endpoint = get_bind_url(self._port, self._config)
            logger.info("%s binding %s", actor, self._endpoint)
            self._socket.bind(self._endpoint)
        else:
            logger.info("%s connecting to %s", actor, self._endpoint)
            self._socket.connect(self._endpoint)

        if self._role is TransferRole.SERVE:
            self._reporter.info("server waiting for initial request")
            request = self._waiter.receive_within(self._socket, self._timeout, actor)
            if request is None:
                raise ConnectionTimeout("Image not transferred, receiver has not connected yet.")
            if not HandshakeToken.CAN_GET.matches(request.decode("utf-8", errors="replace")):
                raise ProtocolViolation("Protocol error, expected initial ping from the receiver.")
        elif self._role is TransferRole.REQUEST:
            self._reporter.info("receiver initial request sent")
            self._socket.send_string(HandshakeToken.CAN_GET.value)

    def _apply_hint(self, message: bytes) -> SessionHint:
        text = message.decode("utf-8", errors="replace")
        self._reporter.info(f"received header: {text}")
        hint = SessionHint.parse(text)
        if hint.expected_images is not None:
            self._expected_images = hint.expected_images
        return hint

    def _finish_stream(self) -> None:
        self._all_transferred = True
        self._reporter.info(f"{self._role.actor} hanging up")
        self._reporter.set_progress(1.0)
        self._tear_down()

    def _ensure_not_closed(self) -> None:
        if self._state is SessionState.CLOSED:
            raise SessionClosed()

    def _require_role(self, purpose: str, *roles: TransferRole) -> None:
        if self._role not in roles:
            raise ProtocolViolation(f"this {self._role.name} session cannot be used for {purpose}")

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """Close the session on any failure and surface a typed error."""
        try:
            with transport_errors(f"{self._role.actor} ({self._role.name})"):
                yield
        except BaseException:
            self._tear_down()
            raise

    def _tear_down(self) -> None:
        if self._state is SessionState.CLOSED:
            return
        if self._state is SessionState.OPEN:
            self._reporter.info(f"{self._role.actor} cleaning")
        self._state = SessionState.CLOSED
        socket, context = self._socket, self._context
        self._socket = None
        self._context = None
        self._codec = None
        try:
            close_socket(socket, self._config)
        finally:
            if context is not None:
                context.term()
