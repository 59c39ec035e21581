# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/node/interface.py

from __future__ import annotations

from pathlib import Path
from typing import Callable, Protocol

from .models import NodeSpec


class NodeSupervisor(Protocol):
    """
    Contract for one node process in a test network.
    The orchestrator never looks inside a node; it only drives these calls.
    """

    name: str
    spec: NodeSpec

    def configure(self) -> None:
        """Write the node's own configuration under the session directory."""
        ...

    def start_dependencies(self) -> bool:
        """Start databases/brokers the node needs. False means the node cannot run."""
        ...

    def start(self) -> None:
        ...

    def wait_until_running(self, timeout: float) -> bool:
        """Block up to `timeout` seconds; True once the node reports ready."""
        ...

    def shut_down(self) -> None:
        ...


# (spec, session directory, timeout seconds) -> supervisor
NodeFactory = Callable[[NodeSpec, Path, float], NodeSupervisor]
