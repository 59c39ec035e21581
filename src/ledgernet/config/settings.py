# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/config/settings.py

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class NetworkSettings:
    """Fixed filesystem inputs and knobs shared by every session."""

    runs_dir: Path
    drivers_dir: Path
    authority_config_dir: Path
    authority_work_dir: Path
    network_parameters_file: Path
    rpc_proxy_script: Path
    rpc_proxy_pid_file: Path
    error_marker: str = "Exception"
    always_clean: bool = False
    service_grace: float = 5.0


def _path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value) if value else default


def load_settings(base_dir: Optional[Path] = None) -> NetworkSettings:
    # defaults are relative to the working directory; override via env
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    runs_dir = _path("LEDGERNET_RUNS_DIR", base / "build" / "runs")
    return NetworkSettings(
        runs_dir=runs_dir,
        drivers_dir=_path("LEDGERNET_DRIVERS_DIR", base / "deps" / "drivers"),
        authority_config_dir=_path("LEDGERNET_AUTHORITY_CONFIG_DIR", base / "deps" / "doorman" / "configs"),
        authority_work_dir=_path("LEDGERNET_AUTHORITY_WORK_DIR", runs_dir / "doorman"),
        network_parameters_file=_path(
            "LEDGERNET_NETWORK_PARAMETERS",
            base / "deps" / "doorman" / "scripts" / "network-parameters.conf",
        ),
        rpc_proxy_script=_path("LEDGERNET_RPC_PROXY_SCRIPT", base / "startRPCproxy.sh"),
        rpc_proxy_pid_file=_path("LEDGERNET_RPC_PROXY_PID_FILE", Path("/tmp/rpcProxy-pid")),
        error_marker=os.getenv("LEDGERNET_ERROR_MARKER", "Exception"),
        always_clean=os.getenv("LEDGERNET_ALWAYS_CLEAN", "false").strip().lower() in _TRUE,
        service_grace=float(os.getenv("LEDGERNET_SERVICE_GRACE", "5")),
    )
