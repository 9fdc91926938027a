"""Error taxonomy for image transfers.

Three kinds are distinguished so callers can tell "peer never came"
(ConnectionTimeout) from "peer spoke a different protocol"
(ProtocolViolation) from "peer went away mid-transfer" (TransportFault).
"""
from __future__ import annotations


class TransferError(Exception):
    """Base class for every error raised by zmqimgtransfer."""


class ConnectionTimeout(TransferError, TimeoutError):
    """No peer message arrived within the allowed waiting time."""


class ProtocolViolation(TransferError):
    """Unexpected token, wrong handshake order or unsupported image."""


class UnsupportedBackendError(ProtocolViolation, NotImplementedError):
    """Storage backend is recognised but cannot be transferred yet."""


class SessionClosed(ProtocolViolation):
    """Operation attempted on a session that is no longer usable."""

    def __init__(self, message: str = "session already closed") -> None:
        super().__init__(message)


class TransportFault(TransferError, ConnectionError):
    """ZeroMQ reported an error on the socket."""
