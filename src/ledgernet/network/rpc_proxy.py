# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/network/rpc_proxy.py

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from .errors import RpcProxyError
from ..config.settings import NetworkSettings
from ..process.command import Command
from ..process.errors import CommandError
from ..process.monitor import FailurePredicate, run_monitored

log = logging.getLogger("ledgernet")


class RpcProxy:
    """
    Optional side-process exposing a remote-control channel into the nodes.
    The launcher script forks the proxy and records its PID in a temp file.
    """

    def __init__(self, settings: NetworkSettings, timeout: float, predicate: FailurePredicate):
        self.settings = settings
        self.timeout = timeout
        self.predicate = predicate
        self.command: Optional[Command] = None
        self.running = False

    def start(self, install_dir: Path, port: int) -> None:
        script = self.settings.rpc_proxy_script
        if not script.is_file():
            raise RpcProxyError(f"RPC proxy launcher not found: {script}")

        target = Path(install_dir) / script.name
        if target.resolve() != script.resolve():
            shutil.copy2(script, target)

        log.info("Bootstrapping RPC proxy, please wait ...")
        self.command = Command(
            [f"./{script.name}", str(install_dir), str(port)],
            working_dir=install_dir,
            timeout=self.timeout,
            label="rpc-proxy",
        )
        try:
            ok = run_monitored(self.command, self.predicate, "rpc-proxy")
        except CommandError as e:
            raise RpcProxyError(f"Failed to bootstrap RPC proxy: {e}") from e
        if not ok:
            raise RpcProxyError("Failed to bootstrap RPC proxy")

        self.running = True
        log.info("RPC proxy set-up completed")

    def stop(self) -> None:
        """Best effort: the command, then whatever PID the launcher recorded."""
        if not self.running:
            return
        self.running = False
        if self.command is not None:
            self.command.kill()

        pid_file = self.settings.rpc_proxy_pid_file
        try:
            pid = pid_file.read_text().splitlines()[0].strip()
        except (OSError, IndexError) as e:
            log.warning("Unable to locate PID file %s: %s", pid_file, e)
            return

        try:
            Command(["kill", "-9", pid], timeout=10, label="rpc-proxy-kill").run()
        except CommandError as e:
            log.warning("Unable to kill RPC proxy (pid=%s): %s", pid, e)
        try:
            pid_file.unlink()
        except OSError as e:
            log.warning("Unable to delete PID file %s: %s", pid_file, e)
