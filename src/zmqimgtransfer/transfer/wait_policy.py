"""Bounded polling waits on a ZeroMQ socket."""
from __future__ import annotations

import logging
import time
from typing import Optional

import zmq

from zmqimgtransfer.config import WaitPolicy
from zmqimgtransfer.errors import ConnectionTimeout
from zmqimgtransfer.progress import ProgressReporter

logger = logging.getLogger(__name__)


class ConnectionWaiter:
    """Busy-waits on socket conditions within a timeout budget.

    Every wait checks the condition once per ``poll_interval`` and reports
    a heartbeat line every ``heartbeat_interval`` seconds of waiting.
    """

    def __init__(self, policy: WaitPolicy, reporter: Optional[ProgressReporter] = None) -> None:
        self._policy = policy
        self._reporter = reporter or ProgressReporter()

    @property
    def policy(self) -> WaitPolicy:
        return self._policy

    def wait_for_connection(self, socket, timeout: float, waiter: str = "receiver") -> bool:
        """Return True once a message is ready, False if ``timeout`` passed."""
        return self._poll_until(lambda: _has_incoming(socket), timeout, waiter)

    def expect_message(self, socket, timeout: float, what: str, waiter: str = "receiver") -> None:
        if not self.wait_for_connection(socket, timeout, waiter):
            raise ConnectionTimeout(f"Reached timeout ({timeout:g}s) waiting for {what}.")

    def wait_for_more(self, socket, timeout: float, waiter: str = "receiver") -> None:
        """Wait for the next part of a multi-part message; a stall is fatal."""
        if not self._poll_until(lambda: bool(socket.getsockopt(zmq.RCVMORE)), timeout, waiter):
            raise ConnectionTimeout(
                f"Reached timeout ({timeout:g}s) for the next incoming data."
            )

    def receive_within(self, socket, timeout: float, waiter: str = "receiver") -> Optional[bytes]:
        """Receive one message without blocking, or return None on timeout."""
        start = time.monotonic()
        next_heartbeat = self._policy.heartbeat_interval
        while True:
            try:
                return socket.recv(zmq.NOBLOCK)
            except zmq.Again:
                pass

            elapsed = time.monotonic() - start
            if elapsed >= timeout:
                return None
            next_heartbeat = self._heartbeat(waiter, elapsed, next_heartbeat)
            time.sleep(min(self._policy.poll_interval, timeout - elapsed))

    def _poll_until(self, condition, timeout: float, waiter: str) -> bool:
        start = time.monotonic()
        next_heartbeat = self._policy.heartbeat_interval
        while True:
            if condition():
                return True
            elapsed = time.monotonic() - start
            if elapsed >= timeout:
                logger.debug("%s gave up after %.1f seconds", waiter, elapsed)
                return False
            next_heartbeat = self._heartbeat(waiter, elapsed, next_heartbeat)
            time.sleep(min(self._policy.poll_interval, timeout - elapsed))

    def _heartbeat(self, waiter: str, elapsed: float, next_heartbeat: float) -> float:
        if elapsed < next_heartbeat:
            return next_heartbeat
        self._reporter.info(f"{waiter} waiting already {int(elapsed)} seconds")
        return next_heartbeat + self._policy.heartbeat_interval


def _has_incoming(socket) -> bool:
    return bool(socket.getsockopt(zmq.EVENTS) & zmq.POLLIN)
