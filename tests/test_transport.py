from pathlib import Path

import pytest
import zmq

from zmqimgtransfer.config import TransferConfig, TransportMode, WaitPolicy
from zmqimgtransfer.errors import ConnectionTimeout, TransferError, TransportFault
from zmqimgtransfer.transport import (
    close_socket,
    create_pair_socket,
    get_bind_url,
    get_ipc_socket_path,
    get_zmq_transport_url,
    normalize_peer_address,
    remove_ipc_socket,
    transport_errors,
)


def test_config_defaults_and_validation():
    config = TransferConfig()
    assert config.transport_mode is TransportMode.TCP
    assert config.connection_broken_timeout == 60.0
    assert config.wait_policy().poll_interval == 1.0

    assert TransferConfig(transport_mode="IPC").transport_mode is TransportMode.IPC
    with pytest.raises(ValueError):
        TransferConfig(transport_mode="udp")
    with pytest.raises(ValueError):
        TransferConfig(connection_broken_timeout=0)
    with pytest.raises(ValueError):
        TransferConfig(poll_interval=-1)


def test_tcp_urls():
    config = TransferConfig()
    assert get_zmq_transport_url(5555, config=config) == "tcp://localhost:5555"
    assert get_bind_url(5555, config) == "tcp://*:5555"
    assert normalize_peer_address("scope-pc:5555") == "tcp://scope-pc:5555"
    assert normalize_peer_address("ipc:///tmp/x.sock") == "ipc:///tmp/x.sock"


def test_ipc_urls_and_cleanup(tmp_path):
    config = TransferConfig(transport_mode=TransportMode.IPC, ipc_socket_dir=tmp_path / "ipc")
    path = get_ipc_socket_path(7000, config)

    assert path == tmp_path / "ipc" / "zmqimgtransfer-7000.sock"
    assert get_bind_url(7000, config) == f"ipc://{path}"
    assert path.parent.is_dir()
    assert get_zmq_transport_url(7000, mode="tcp", config=config) == "tcp://localhost:7000"

    assert remove_ipc_socket(7000, config) is False
    Path(path).touch()
    assert remove_ipc_socket(7000, config) is True


def test_pair_socket_options():
    config = TransferConfig(linger_seconds=0.25, connection_broken_timeout=2.0)
    context = zmq.Context()
    socket = create_pair_socket(context, config)
    try:
        assert socket.type == zmq.PAIR
        assert socket.getsockopt(zmq.LINGER) == 250
        assert socket.getsockopt(zmq.SNDTIMEO) == 2000
    finally:
        close_socket(socket, config)
        close_socket(socket, config)
        close_socket(None, config)
        context.term()


def test_zmq_errors_are_translated():
    with pytest.raises(ConnectionTimeout):
        with transport_errors("sender"):
            raise zmq.Again()

    with pytest.raises(TransportFault, match="receiver crashed"):
        with transport_errors("receiver"):
            raise zmq.ZMQError(zmq.EADDRINUSE)

    with pytest.raises(ValueError):
        with transport_errors("receiver"):
            raise ValueError("untouched")


def test_error_taxonomy():
    assert issubclass(ConnectionTimeout, TimeoutError)
    assert issubclass(TransportFault, ConnectionError)
    assert all(issubclass(cls, TransferError) for cls in (ConnectionTimeout, TransportFault))


def test_config_derives_the_wait_policy():
    policy = TransferConfig(poll_interval=0.2, heartbeat_interval=3.0).wait_policy()
    assert isinstance(policy, WaitPolicy)
    assert (policy.poll_interval, policy.heartbeat_interval) == (0.2, 3.0)
