"""Transfer configuration shared by sessions, codecs and waiters."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class TransportMode(Enum):
    TCP = "tcp"
    IPC = "ipc"


@dataclass(frozen=True)
class WaitPolicy:
    poll_interval: float = 1.0
    heartbeat_interval: float = 10.0


@dataclass(frozen=True)
class TransferConfig:
    """Timing and addressing knobs for a transfer.

    The handshake timeout (how long to wait for a peer to show up) is not
    part of this value: it belongs to each session and is passed when the
    session is created. ``connection_broken_timeout`` applies once the
    handshake has happened, i.e. while waiting for metadata, chunks and
    the final ``done``.
    """

    connection_broken_timeout: float = 60.0
    poll_interval: float = 1.0
    heartbeat_interval: float = 10.0
    linger_seconds: float = 1.0
    transport_mode: TransportMode = TransportMode.TCP
    bind_host: str = "*"
    default_port: int = 54545
    ipc_socket_dir: Path = field(default_factory=lambda: Path.home() / ".zmqimgtransfer" / "ipc")
    ipc_socket_prefix: str = "zmqimgtransfer"
    ipc_socket_extension: str = ".sock"

    def __post_init__(self):
        if self.connection_broken_timeout <= 0:
            raise ValueError(
                f"connection_broken_timeout must be > 0, got {self.connection_broken_timeout}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.heartbeat_interval <= 0:
            raise ValueError(f"heartbeat_interval must be > 0, got {self.heartbeat_interval}")
        if not isinstance(self.transport_mode, TransportMode):
            object.__setattr__(self, "transport_mode", coerce_transport_mode(self.transport_mode))
        object.__setattr__(self, "ipc_socket_dir", Path(self.ipc_socket_dir))

    def wait_policy(self) -> WaitPolicy:
        return WaitPolicy(
            poll_interval=self.poll_interval,
            heartbeat_interval=self.heartbeat_interval,
        )


def coerce_transport_mode(value) -> TransportMode:
    if isinstance(value, TransportMode):
        return value
    try:
        return TransportMode(str(value).lower())
    except ValueError:
        raise ValueError(f"Unknown transport mode: {value!r}") from None
