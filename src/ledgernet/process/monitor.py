# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/process/monitor.py

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .command import Command

log = logging.getLogger("ledgernet")

# Decides whether an output line means the tool has failed.
FailurePredicate = Callable[[str], bool]

DEFAULT_ERROR_MARKER = "Exception"


def contains_marker(marker: str = DEFAULT_ERROR_MARKER) -> FailurePredicate:
    def _predicate(line: str) -> bool:
        return marker in line

    _predicate.__name__ = f"contains_{marker!r}"
    return _predicate


def interrupt_on_failure(
    command: Command,
    predicate: FailurePredicate,
    label: Optional[str] = None,
) -> Callable[[], None]:
    """
    Interrupt `command` on the first output line matching `predicate`.
    Returns the unsubscribe callable.
    """
    label = label or command.label
    fired = threading.Event()

    def _watch(line: str) -> None:
        if fired.is_set() or not predicate(line):
            return
        fired.set()
        log.warning("[%s] found error in output; interrupting ...\n%s", label, line)
        command.interrupt()

    return command.output.subscribe(_watch)


def run_monitored(
    command: Command,
    predicate: FailurePredicate,
    label: Optional[str] = None,
) -> bool:
    """Run to completion with error-marker supervision; True on success."""
    label = label or command.label
    log.info("[%s] running command: %s", label, command)
    interrupt_on_failure(command, predicate, label)
    ok = command.run()
    if ok:
        log.info("[%s] command executed successfully", label)
    else:
        log.warning("[%s] command failed (exit=%s, interrupted=%s)", label, command.exit_code, command.interrupted)
        for line in command.tail[-20:]:
            log.debug("[%s] %s", label, line)
    return ok


def stop_gracefully(command: Command, grace: float = 5.0) -> None:
    """Interrupt a long-running command and make sure it is gone."""
    if command.pid is None:
        return
    if command.is_alive:
        log.info("[%s] stopping (pid=%s)", command.label, command.pid)
        command.interrupt(grace)
        if not command.join(grace):
            command.kill()
    command.wait_for(grace)
