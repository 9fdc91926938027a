"""Shared pytest fixtures for transfer tests."""

import itertools
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
import zmq

from zmqimgtransfer.config import TransferConfig, TransportMode
from zmqimgtransfer.progress import ProgressCallback
from zmqimgtransfer.transport import get_zmq_transport_url

_ports = itertools.count(40000)


class RecordingProgress(ProgressCallback):
    def __init__(self):
        self.messages = []
        self.fractions = []

    def info(self, message):
        self.messages.append(message)

    def set_progress(self, fraction):
        self.fractions.append(fraction)


@pytest.fixture
def ipc_dir():
    # IPC paths are length-limited, so stay out of pytest's long tmp_path
    path = Path(tempfile.mkdtemp(prefix="zit"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def fast_config(ipc_dir):
    return TransferConfig(
        connection_broken_timeout=5.0,
        poll_interval=0.01,
        heartbeat_interval=10.0,
        linger_seconds=0.5,
        transport_mode=TransportMode.IPC,
        ipc_socket_dir=ipc_dir,
        ipc_socket_prefix="zit",
    )


@pytest.fixture
def endpoint(fast_config):
    """(port, peer address) pair for one session under test."""
    port = next(_ports)
    return port, get_zmq_transport_url(port, config=fast_config)


@pytest.fixture
def run_peer():
    executor = ThreadPoolExecutor(max_workers=2)
    yield lambda fn, *args, **kwargs: executor.submit(fn, *args, **kwargs)
    executor.shutdown(wait=True)


@pytest.fixture
def progress():
    return RecordingProgress()


@pytest.fixture
def socket_pair():
    """Connected inproc PAIR sockets (sender side, receiver side)."""
    context = zmq.Context()
    receiver = context.socket(zmq.PAIR)
    sender = context.socket(zmq.PAIR)
    receiver.setsockopt(zmq.LINGER, 0)
    sender.setsockopt(zmq.LINGER, 0)
    url = f"inproc://pair-{next(_ports)}"
    receiver.bind(url)
    sender.connect(url)
    yield sender, receiver
    sender.close()
    receiver.close()
    context.term()
