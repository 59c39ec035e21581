# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/config/loader.py

import logging
import os
import yaml
from pathlib import Path
from typing import List, Optional

from .models import NetworkConfig
from .settings import NetworkSettings
from ..node.interface import NodeFactory
from ..observers.logger import Observer

log = logging.getLogger("ledgernet")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_override_file(config_path: Path) -> Path | None:
    """
    Locate a local override file using this priority:

    1. LEDGERNET_OVERRIDES_FILE environment variable (explicit override)
    2. <stem>.local.yaml in the same directory as the network config
    """
    env = os.environ.get("LEDGERNET_OVERRIDES_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("LEDGERNET_OVERRIDES_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.with_name(f"{config_path.stem}.local.yaml")
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_config(path: str | Path) -> NetworkConfig:
    """
    Load and validate a network topology YAML file.

    Machine-specific values (distribution paths, timeouts) can live in an
    override file that is deep-merged before validation, or in ``${ENV_VAR}``
    placeholders resolved at load time.
    """
    path = Path(path)
    data = _load_yaml(path)

    override_path = _find_override_file(path)
    if override_path:
        log.debug("Merging overrides from %s", override_path)
        _deep_merge(data, _load_yaml(override_path))
    else:
        log.debug("No override file found, using %s as is", path)

    return NetworkConfig.model_validate(data)


def build_network(
    cfg: NetworkConfig,
    node_factory: NodeFactory,
    settings: Optional[NetworkSettings] = None,
    observers: Optional[List[Observer]] = None,
):
    """Turn a loaded config into a NetworkBuilder ready for generate()."""
    from ..network.builder import NetworkBuilder

    builder = NetworkBuilder(
        cfg.distribution,
        node_factory,
        timeout=cfg.timeout_seconds,
        settings=settings,
        observers=observers,
    )
    if cfg.directory:
        builder.with_directory(Path(cfg.directory))
    builder.with_cleanup_on_stop(cfg.cleanup_on_stop, always_clean=cfg.always_clean)

    for node in cfg.nodes:
        builder.add_node(
            node.name,
            distribution=node.distribution,
            database_type=node.database_type,
            notary_type=node.notary_type,
            issuable_currencies=node.issuable_currencies,
            compatibility_zone_url=node.compatibility_zone_url,
            with_rpc_proxy=node.with_rpc_proxy,
            rpc_proxy_port=node.rpc_proxy_port,
        )
    return builder
