# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/process/command.py

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Sequence, Union

from .errors import CommandNotFoundError, CommandStateError

log = logging.getLogger("ledgernet")

Cmd = Sequence[Union[str, "os.PathLike[str]"]]
LineCallback = Callable[[str], None]

DEFAULT_TIMEOUT = 120.0
DEFAULT_INTERRUPT_GRACE = 5.0
OUTPUT_DRAIN_GRACE = 1.0
TAIL_LINES = 200


class OutputStream:
    """
    Live sequence of output lines (stdout and stderr combined).

    Subscribers registered before start() see every line, later ones see
    lines from the moment they subscribe.
    """

    def __init__(self):
        self._subscribers: List[LineCallback] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: LineCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, line: str) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(line)
            except Exception:
                # a broken subscriber must not stall the pipe
                log.exception("Output subscriber failed on line: %s", line)


class Command:
    """
    One external program run with a fixed argv, working directory and hard timeout.

    - Output is drained eagerly by a reader thread and pushed to `output` subscribers.
    - interrupt() asks the process to stop (SIGTERM) and escalates to kill() after a grace period.
    - wait_for() blocks until exit or timeout and reports success; it never looks at output.
    """

    def __init__(
        self,
        argv: Cmd,
        working_dir: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
        env: Optional[Dict[str, str]] = None,
        label: Optional[str] = None,
    ):
        if not argv:
            raise ValueError("Command needs at least a program to run")
        self.argv: List[str] = [str(a) for a in argv]
        self.working_dir = Path(working_dir) if working_dir is not None else None
        self.timeout = float(timeout)
        self.env = env
        self.label = label or Path(self.argv[0]).name
        self.output = OutputStream()

        self._process: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None
        self._escalation: Optional[threading.Timer] = None
        self._started_at: Optional[float] = None
        self._interrupted = threading.Event()
        self._tail: Deque[str] = deque(maxlen=TAIL_LINES)
        self._lock = threading.Lock()

    # ------------------------- lifecycle -------------------------

    def start(self) -> "Command":
        with self._lock:
            if self._process is not None:
                raise CommandStateError(f"[{self.label}] already started")
            if self.working_dir is not None and not self.working_dir.is_dir():
                raise CommandNotFoundError(
                    f"[{self.label}] working directory does not exist: {self.working_dir}"
                )

            env = {**os.environ, **self.env} if self.env else None
            try:
                self._process = subprocess.Popen(
                    self.argv,
                    cwd=str(self.working_dir) if self.working_dir else None,
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    errors="replace",
                    bufsize=1,
                )
            except FileNotFoundError as e:
                raise CommandNotFoundError(f"[{self.label}] program not found: {self.argv[0]}") from e
            except PermissionError as e:
                raise CommandNotFoundError(f"[{self.label}] program is not executable: {self.argv[0]}") from e

            self._started_at = time.monotonic()
            self._reader = threading.Thread(
                target=self._drain,
                name=f"{self.label}-output",
                daemon=True,
            )
            self._reader.start()

        log.debug("[%s] started (pid=%s): %s", self.label, self._process.pid, self)
        return self

    def _drain(self) -> None:
        stream = self._process.stdout
        try:
            for raw in stream:
                line = raw.rstrip("\r\n")
                self._tail.append(line)
                self.output.publish(line)
        finally:
            stream.close()

    def interrupt(self, grace: float = DEFAULT_INTERRUPT_GRACE) -> None:
        """Cooperative stop. Safe to call from an output subscriber."""
        self._interrupted.set()
        proc = self._process
        if proc is None or proc.poll() is not None:
            return
        log.debug("[%s] interrupting (pid=%s)", self.label, proc.pid)
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        with self._lock:
            if self._escalation is None:
                self._escalation = threading.Timer(grace, self._escalate)
                self._escalation.daemon = True
                self._escalation.start()

    def _escalate(self) -> None:
        if self.is_alive:
            log.warning("[%s] still running after interrupt; killing", self.label)
            self.kill()

    def kill(self) -> None:
        proc = self._process
        if proc is None or proc.poll() is not None:
            return
        log.debug("[%s] killing (pid=%s)", self.label, proc.pid)
        try:
            proc.kill()
        except ProcessLookupError:
            pass

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait without side effects. True when the process has exited."""
        if self._process is None:
            raise CommandStateError(f"[{self.label}] not started")
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    def wait_for(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the process exits or the timeout elapses.

        Without an explicit timeout the hard timeout counts from start().
        A timed out process is killed. Success means exit code 0 and no interrupt.
        """
        if self._process is None:
            raise CommandStateError(f"[{self.label}] not started")
        if timeout is None:
            timeout = max(0.0, self.timeout - (time.monotonic() - self._started_at))

        exited = self.join(timeout)
        if not exited:
            log.warning("[%s] timed out after %.1fs; killing", self.label, timeout)
            self.kill()
            self._process.wait()
        self._finish()

        if not exited:
            return False
        log.debug("[%s][exit %s]", self.label, self._process.returncode)
        return self._process.returncode == 0 and not self.interrupted

    def _finish(self) -> None:
        if self._escalation is not None:
            self._escalation.cancel()
        # all output has been delivered once the reader is gone. A background
        # child that inherited stdout keeps the pipe open past our exit, so
        # only wait briefly for the tail and leave the daemon reader behind.
        if self._reader is not None:
            self._reader.join(timeout=OUTPUT_DRAIN_GRACE)
            if self._reader.is_alive():
                log.debug("[%s] output pipe still held open by a child process", self.label)

    def run(self) -> bool:
        self.start()
        return self.wait_for()

    # ------------------------- introspection -------------------------

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def exit_code(self) -> Optional[int]:
        return self._process.poll() if self._process is not None else None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    @property
    def tail(self) -> List[str]:
        return list(self._tail)

    def __str__(self) -> str:
        return shlex.join(self.argv)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.argv!r}, cwd={self.working_dir}, timeout={self.timeout})"


class JarCommand(Command):
    """`java -jar <jar> <args...>`"""

    def __init__(
        self,
        jar_file: Path,
        args: Sequence[str] = (),
        working_dir: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
        java: str = "java",
        env: Optional[Dict[str, str]] = None,
        label: Optional[str] = None,
    ):
        self.jar_file = Path(jar_file)
        super().__init__(
            [java, "-jar", str(self.jar_file), *args],
            working_dir=working_dir,
            timeout=timeout,
            env=env,
            label=label or self.jar_file.stem,
        )
