"""ZeroMQ addressing and socket helpers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import zmq

from zmqimgtransfer.config import TransferConfig, TransportMode, coerce_transport_mode
from zmqimgtransfer.errors import ConnectionTimeout, TransportFault

logger = logging.getLogger(__name__)

__all__ = [
    "close_socket",
    "coerce_transport_mode",
    "create_pair_socket",
    "get_bind_url",
    "get_ipc_socket_path",
    "get_zmq_transport_url",
    "normalize_peer_address",
    "remove_ipc_socket",
    "transport_errors",
]


def get_ipc_socket_path(port: int, config: Optional[TransferConfig] = None) -> Path:
    config = config or TransferConfig()
    return config.ipc_socket_dir / f"{config.ipc_socket_prefix}-{port}{config.ipc_socket_extension}"


def get_zmq_transport_url(
    port: int,
    host: str = "localhost",
    mode: TransportMode | str | None = None,
    config: Optional[TransferConfig] = None,
) -> str:
    config = config or TransferConfig()
    mode = config.transport_mode if mode is None else coerce_transport_mode(mode)
    if mode is TransportMode.IPC:
        return f"ipc://{get_ipc_socket_path(port, config)}"
    return f"tcp://{host}:{port}"


def get_bind_url(port: int, config: Optional[TransferConfig] = None) -> str:
    config = config or TransferConfig()
    if config.transport_mode is TransportMode.IPC:
        config.ipc_socket_dir.mkdir(parents=True, exist_ok=True)
    return get_zmq_transport_url(port, host=config.bind_host, config=config)


def normalize_peer_address(address: str) -> str:
    """Accept ``host:port`` as shorthand for ``tcp://host:port``."""
    if "://" in address:
        return address
    return f"tcp://{address}"


def remove_ipc_socket(port: int, config: Optional[TransferConfig] = None) -> bool:
    path = get_ipc_socket_path(port, config)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.debug("Removed IPC socket %s", path)
    return True


def create_pair_socket(context: zmq.Context, config: TransferConfig) -> zmq.Socket:
    """PAIR socket whose sends and close are bounded in time."""
    socket = context.socket(zmq.PAIR)
    socket.setsockopt(zmq.LINGER, int(config.linger_seconds * 1000))
    socket.setsockopt(zmq.SNDTIMEO, int(config.connection_broken_timeout * 1000))
    return socket


def close_socket(socket: Optional[zmq.Socket], config: TransferConfig) -> None:
    if socket is None or socket.closed:
        return
    socket.close(linger=int(config.linger_seconds * 1000))


@contextmanager
def transport_errors(actor: str) -> Iterator[None]:
    """Translate ZeroMQ exceptions into the transfer error taxonomy."""
    try:
        yield
    except zmq.Again as error:
        raise ConnectionTimeout(f"{actor} timed out on the socket: {error}") from error
    except zmq.ZMQError as error:
        raise TransportFault(f"{actor} crashed, ZeroMQ error: {error}") from error
