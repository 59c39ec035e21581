# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/network/cleanup.py

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .rpc_proxy import RpcProxy

log = logging.getLogger("ledgernet")

# Removed from each node directory after a failed run; logs/ and node.conf stay.
EPHEMERAL_NODE_DIRS: Tuple[str, ...] = (
    "additional-node-infos",
    "artemis",
    "certificates",
    "cordapps",
    "shell-commands",
    "sshkey",
)
EPHEMERAL_NODE_FILES: Tuple[str, ...] = (
    "corda.jar",
    "network-parameters",
    "persistence.mv.db",
    "process-id",
)
NODE_INFO_GLOB = "nodeInfo-*"
SHARED_DIRS: Tuple[str, ...] = ("libs", ".cache")


@dataclass
class CleanupReport:
    full: bool = False
    removed: List[Path] = field(default_factory=list)
    failures: List[Tuple[Path, str]] = field(default_factory=list)

    def summary(self) -> str:
        return f"full={self.full} removed={len(self.removed)} failures={len(self.failures)}"


class CleanupPolicy:
    """
    Decides what survives a session:
      - success (or always_clean): the whole target directory goes
      - failure: ephemeral node state goes, logs and configuration stay
    """

    def __init__(self, target_dir: Path, node_names: Iterable[str], always_clean: bool = False):
        self.target_dir = Path(target_dir)
        self.node_names = list(node_names)
        self.always_clean = always_clean

    def run(self, failed: bool, rpc_proxy: Optional[RpcProxy] = None) -> CleanupReport:
        report = CleanupReport()
        if rpc_proxy is not None:
            try:
                rpc_proxy.stop()
            except Exception as e:
                log.warning("Failed to stop RPC proxy: %s", e)

        if not failed or self.always_clean:
            log.info("Cleaning up runtime ...")
            report.full = True
            self._remove(self.target_dir, report)
        else:
            log.info("Deleting temporary files, but retaining logs and config ...")
            for name in self.node_names:
                self._clean_node(self.target_dir / name, report)
            for shared in SHARED_DIRS:
                self._remove(self.target_dir / shared, report)

        log.info("Cleanup finished: %s", report.summary())
        return report

    def _clean_node(self, node_dir: Path, report: CleanupReport) -> None:
        for d in EPHEMERAL_NODE_DIRS:
            self._remove(node_dir / d, report)
        for f in EPHEMERAL_NODE_FILES:
            self._remove(node_dir / f, report)
        if node_dir.is_dir():
            for node_info in node_dir.glob(NODE_INFO_GLOB):
                self._remove(node_info, report)

    def _remove(self, path: Path, report: CleanupReport) -> None:
        if not path.exists() and not path.is_symlink():
            return
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            report.removed.append(path)
        except OSError as e:
            log.warning("Unable to delete %s: %s", path, e)
            report.failures.append((path, str(e)))
