# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/bootstrap/interface.py

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Protocol

from ..config.settings import NetworkSettings
from ..network.errors import BootstrapError
from ..node.interface import NodeSupervisor
from ..process.command import Command
from ..process.errors import CommandError
from ..process.monitor import FailurePredicate, run_monitored


@dataclass(frozen=True)
class BootstrapContext:
    target_dir: Path
    nodes: Mapping[str, NodeSupervisor]
    timeout: float
    settings: NetworkSettings
    failure_predicate: FailurePredicate
    # called with (label, command, ok) after each external step
    on_command: Optional[Callable[[str, Command, bool], None]] = None


@dataclass
class BootstrapResult:
    bootstrapped: bool = True
    # long-running processes the session owns from now on
    services: List[Command] = field(default_factory=list)


class BootstrapStrategy(Protocol):
    """
    Prepares the shared network configuration for a set of nodes.
    Must raise BootstrapError (or DependencyStartError) on hard failures.
    """

    name: str

    def bootstrap(self, context: BootstrapContext) -> BootstrapResult:
        ...


def run_step(context: BootstrapContext, command: Command, label: str, failure_message: str) -> None:
    """Run one blocking external step; any failure is fatal to the bootstrap."""
    try:
        ok = run_monitored(command, context.failure_predicate, label)
    except CommandError as e:
        raise BootstrapError(f"{failure_message}: {e}") from e
    if context.on_command:
        context.on_command(label, command, ok)
    if not ok:
        raise BootstrapError(failure_message)
