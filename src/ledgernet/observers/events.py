# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one network session
    network: str      # session target directory

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_ctx(network: str) -> Dict[str, Any]:
    return {
        "ts": now(),
        "run_id": str(uuid.uuid4()),
        "network": network,
    }


# ---------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NetworkGenerated(BaseEvent):
    nodes: List[str]
    strategy: str

@dataclass(frozen=True)
class BootstrapCompleted(BaseEvent):
    strategy: str
    bootstrapped: bool

@dataclass(frozen=True)
class BootstrapFailed(BaseEvent):
    strategy: str
    error: str

@dataclass(frozen=True)
class CommandFinished(BaseEvent):
    label: str
    command: str
    ok: bool


# ---------------------------------------------------------------------
# Node lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodeStarted(BaseEvent):
    name: str

@dataclass(frozen=True)
class RpcProxyStarted(BaseEvent):
    install_dir: str
    port: int

@dataclass(frozen=True)
class NodesRunning(BaseEvent):
    nodes: List[str]

@dataclass(frozen=True)
class NodesFailed(BaseEvent):
    failed: List[str]
    error: str


# ---------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class TerminationSignalled(BaseEvent):
    reason: Optional[str] = None

@dataclass(frozen=True)
class NetworkStopped(BaseEvent):
    has_error: bool

@dataclass(frozen=True)
class CleanupFinished(BaseEvent):
    full: bool
    removed: int
    failures: int
