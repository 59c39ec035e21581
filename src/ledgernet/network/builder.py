# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/network/builder.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .network import DEFAULT_TIMEOUT, Network
from ..bootstrap.selection import select_strategy
from ..config.settings import NetworkSettings, load_settings
from ..node.interface import NodeFactory, NodeSupervisor
from ..node.models import DatabaseType, Distribution, NodeSpec, NotaryType
from ..observers.events import NetworkGenerated
from ..observers.logger import Observer
from ..process.monitor import FailurePredicate

log = logging.getLogger("ledgernet")

DEFAULT_CZ_URL = "http://localhost:1300"


def run_directory(runs_dir: Path) -> Path:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return runs_dir / ts


class NetworkBuilder:
    """
    Accumulates node specs, then generate() builds and bootstraps the network.

    Nodes are keyed by name; adding a node twice replaces the first one.
    The generated network gets its own frozen copy of the topology.
    """

    def __init__(
        self,
        distribution: Distribution,
        node_factory: NodeFactory,
        timeout: float = DEFAULT_TIMEOUT,
        settings: Optional[NetworkSettings] = None,
        observers: Optional[List[Observer]] = None,
    ):
        self.distribution = distribution
        self.node_factory = node_factory
        self.timeout = float(timeout)
        self.settings = settings or load_settings()
        self.observers = list(observers or [])
        self.directory = run_directory(self.settings.runs_dir)
        self.failure_predicate: Optional[FailurePredicate] = None
        self.cleanup_on_stop = False
        self.always_clean: Optional[bool] = None
        self._specs: Dict[str, NodeSpec] = {}

    # ------------------------- configuration -------------------------

    def with_directory(self, directory: Path) -> "NetworkBuilder":
        self.directory = Path(directory)
        return self

    def with_failure_predicate(self, predicate: FailurePredicate) -> "NetworkBuilder":
        self.failure_predicate = predicate
        return self

    def with_cleanup_on_stop(self, enabled: bool = True, always_clean: Optional[bool] = None) -> "NetworkBuilder":
        self.cleanup_on_stop = enabled
        self.always_clean = always_clean
        return self

    def with_observer(self, observer) -> "NetworkBuilder":
        self.observers.append(observer)
        return self

    # ------------------------- topology -------------------------

    def add_node(
        self,
        name: str,
        distribution: Optional[Distribution] = None,
        database_type: DatabaseType = DatabaseType.H2,
        notary_type: NotaryType = NotaryType.NONE,
        issuable_currencies: Sequence[str] = (),
        compatibility_zone_url: str = DEFAULT_CZ_URL,
        with_rpc_proxy: bool = False,
        rpc_proxy_port: int = 13002,
    ) -> "NetworkBuilder":
        # NodeSpec drops the zone URL unless the distribution is authority-managed
        spec = NodeSpec(
            name=name,
            distribution=distribution or self.distribution,
            database_type=database_type,
            notary_type=notary_type,
            issuable_currencies=tuple(issuable_currencies),
            compatibility_zone_url=compatibility_zone_url,
            with_rpc_proxy=with_rpc_proxy,
            rpc_proxy_port=rpc_proxy_port,
        )
        return self.add_spec(spec)

    def add_spec(self, spec: NodeSpec) -> "NetworkBuilder":
        if spec.name in self._specs:
            log.debug("Replacing node %s in topology", spec.name)
        self._specs[spec.name] = spec
        return self

    @property
    def specs(self) -> Dict[str, NodeSpec]:
        return dict(self._specs)

    # ------------------------- generate -------------------------

    def _supervisors(self) -> Dict[str, NodeSupervisor]:
        return {
            name: self.node_factory(spec, self.directory, self.timeout)
            for name, spec in self._specs.items()
        }

    def generate(self) -> Network:
        """Build the network and run the bootstrap matching the distribution type."""
        network = Network(
            self._supervisors(),
            self.directory,
            timeout=self.timeout,
            settings=self.settings,
            failure_predicate=self.failure_predicate,
            cleanup_on_stop=self.cleanup_on_stop,
            always_clean=self.always_clean,
            observers=list(self.observers),
        )
        strategy = select_strategy(self.distribution)
        network._emit(NetworkGenerated, nodes=list(network.nodes), strategy=strategy.name)
        network.bootstrap(strategy)
        return network
