# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/network/state.py

from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransitionError


class SessionState(str, Enum):
    CREATED = "created"
    BOOTSTRAPPED = "bootstrapped"
    STARTED = "started"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"


_ALLOWED: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.CREATED: frozenset({SessionState.BOOTSTRAPPED, SessionState.FAILED, SessionState.STOPPED}),
    SessionState.BOOTSTRAPPED: frozenset({SessionState.STARTED, SessionState.FAILED, SessionState.STOPPED}),
    SessionState.STARTED: frozenset({SessionState.RUNNING, SessionState.FAILED, SessionState.STOPPED}),
    SessionState.RUNNING: frozenset({SessionState.FAILED, SessionState.STOPPED}),
    SessionState.FAILED: frozenset({SessionState.STOPPED}),
    SessionState.STOPPED: frozenset(),
}


class SessionStateMachine:
    """
    Single authoritative lifecycle state of a network session.

    The failure record is kept apart from the state so that a failed session
    still reports has_error after it has been stopped.
    """

    def __init__(self):
        self._state = SessionState.CREATED
        self._error: Optional[BaseException] = None
        self._lock = threading.RLock()

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def error(self) -> Optional[BaseException]:
        with self._lock:
            return self._error

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def can_move(self, target: SessionState) -> bool:
        with self._lock:
            return target in _ALLOWED[self._state]

    def move(self, target: SessionState) -> SessionState:
        with self._lock:
            if target not in _ALLOWED[self._state]:
                raise InvalidTransitionError(f"Cannot move session from {self._state.value} to {target.value}")
            previous, self._state = self._state, target
            return previous

    def try_move(self, target: SessionState) -> bool:
        """Move if allowed; False (and no change) otherwise."""
        with self._lock:
            if target not in _ALLOWED[self._state]:
                return False
            self._state = target
            return True

    def fail(self, error: BaseException) -> bool:
        """
        Record the first failure and move to FAILED when still live.
        Returns True when this call recorded the failure.
        """
        with self._lock:
            first = self._error is None
            if first:
                self._error = error
            self.try_move(SessionState.FAILED)
            return first


class TerminationSignal:
    """One-shot cross-thread notification; every wait is bounded."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()

    def fire(self) -> bool:
        """True when this call fired the signal, False if it already had fired."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        if timeout is None or timeout < 0:
            raise ValueError("TerminationSignal.wait needs a non-negative timeout")
        return self._event.wait(timeout)
