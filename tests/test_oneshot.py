import socket

import numpy as np
import pytest
import zmq

from zmqimgtransfer.config import TransferConfig, TransportMode
from zmqimgtransfer.errors import ConnectionTimeout, ProtocolViolation
from zmqimgtransfer.messages import Backend
from zmqimgtransfer.transfer import oneshot
from zmqimgtransfer.transport import get_ipc_socket_path


def _free_tcp_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def test_send_and_receive_over_ipc(endpoint, fast_config, run_peer, progress):
    port, address = endpoint
    image = np.linspace(0, 1, 64 * 48, dtype=np.float64).reshape(48, 64)
    receiving = run_peer(oneshot.receive_image, port, 5.0, progress, config=fast_config)

    oneshot.send_image(image, address, 5.0, name="gradient", config=fast_config)
    received = receiving.result(timeout=10)

    assert received.name == "gradient"
    assert received.envelope.dims == (64, 48)
    assert np.array_equal(received.array, image)
    assert progress.messages[0] == "receiver started"
    assert "receiver cleaning" in progress.messages


def test_no_session_lines_on_the_wire(endpoint, fast_config, run_peer):
    port, address = endpoint
    sending = run_peer(oneshot.send_image, np.arange(8, dtype=np.int16), address, 5.0, config=fast_config)

    context = zmq.Context()
    raw = context.socket(zmq.PAIR)
    try:
        raw.bind(address)
        assert raw.poll(5000, zmq.POLLIN)
        assert raw.recv_string().startswith("v1 dimNumber 1 8 ShortType ArrayImg")
        raw.send_string("ready")
        frames = raw.recv_multipart()
        assert frames[0].startswith(b"metadata__QWE__")
        raw.send_string("done")
        sending.result(timeout=10)
    finally:
        raw.close(linger=0)
        context.term()


def test_serve_and_request(endpoint, fast_config, run_peer):
    port, address = endpoint
    image = (np.arange(5 * 40 * 30) % 100).astype(np.int8).reshape(5, 40, 30)
    serving = run_peer(
        oneshot.serve_image, image, port, 5.0, name="stack", backend=Backend.PLANAR, config=fast_config
    )

    received = oneshot.request_image(address, 5.0, config=fast_config)
    serving.result(timeout=10)

    assert received.name == "stack"
    assert received.envelope.backend is Backend.PLANAR
    assert np.array_equal(received.array, image)


def test_receive_times_out_without_sender(endpoint, fast_config):
    port, _ = endpoint
    with pytest.raises(ConnectionTimeout):
        oneshot.receive_image(port, 0.1, config=fast_config)


def test_serve_rejects_unexpected_request(endpoint, fast_config, run_peer):
    port, address = endpoint
    serving = run_peer(oneshot.serve_image, np.ones(4, dtype=np.uint8), port, 5.0, config=fast_config)

    context = zmq.Context()
    raw = context.socket(zmq.PAIR)
    try:
        raw.connect(address)
        raw.send_string("v0 expect 1 images")
        with pytest.raises(ProtocolViolation):
            serving.result(timeout=10)
    finally:
        raw.close(linger=0)
        context.term()


def test_send_and_receive_over_tcp(run_peer):
    port = _free_tcp_port()
    config = TransferConfig(
        connection_broken_timeout=5.0,
        poll_interval=0.01,
        linger_seconds=0.5,
        transport_mode=TransportMode.TCP,
    )
    image = np.arange(100 * 100, dtype=np.uint16).reshape(100, 100)
    receiving = run_peer(oneshot.receive_image, port, 5.0, config=config)

    oneshot.send_image(image, f"127.0.0.1:{port}", 5.0, config=config)
    assert np.array_equal(receiving.result(timeout=10).array, image)


def test_empty_image_is_refused_before_connecting(endpoint, fast_config):
    port, address = endpoint
    context = zmq.Context()
    raw = context.socket(zmq.PAIR)
    try:
        raw.bind(address)
        with pytest.raises(ProtocolViolation, match="empty image"):
            oneshot.send_image(np.zeros((0, 4), dtype=np.int16), address, 5.0, config=fast_config)
        assert raw.poll(200, zmq.POLLIN) == 0
    finally:
        raw.close(linger=0)
        context.term()


def test_serve_refuses_empty_image_before_binding(endpoint, fast_config):
    port, _ = endpoint
    with pytest.raises(ProtocolViolation, match="empty image"):
        oneshot.serve_image(np.zeros((2, 0), dtype=np.uint8), port, 5.0, config=fast_config)
    assert not get_ipc_socket_path(port, fast_config).exists()
