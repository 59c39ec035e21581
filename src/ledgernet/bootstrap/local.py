# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/bootstrap/local.py

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from .interface import BootstrapContext, BootstrapResult, run_step
from ..network.errors import DependencyStartError
from ..node.models import Distribution, DistributionType
from ..process.command import JarCommand

log = logging.getLogger("ledgernet")


class LocalBootstrap:
    """
    Bootstraps an open network on disk:
      - copy database drivers into <target>/libs
      - configure every node and start its dependencies
      - run the network bootstrapper of the newest non-authority distribution
    """

    name = "local"

    def bootstrap(self, context: BootstrapContext) -> BootstrapResult:
        self._copy_database_drivers(context)
        self._configure_nodes(context)

        distribution = self._select_bootstrapper(context)
        if distribution is None:
            log.warning("No node uses a locally bootstrapped distribution; skipping network bootstrapper")
            return BootstrapResult(bootstrapped=False)

        bootstrapper = distribution.network_bootstrapper
        if not bootstrapper.exists():
            log.warning("Network bootstrapping tool does not exist (%s); continuing ...", bootstrapper)
            return BootstrapResult(bootstrapped=False)

        log.info("Bootstrapping network with %s, please wait ...", distribution)
        command = JarCommand(
            bootstrapper,
            [str(context.target_dir)],
            working_dir=context.target_dir,
            timeout=context.timeout,
            label="network-bootstrapper",
        )
        run_step(context, command, "network-bootstrapper", "Failed to bootstrap network")
        log.info("Network set-up completed")
        return BootstrapResult(bootstrapped=True)

    def _copy_database_drivers(self, context: BootstrapContext) -> Path:
        driver_dir = context.target_dir / "libs"
        driver_dir.mkdir(parents=True, exist_ok=True)
        source = context.settings.drivers_dir
        if not source.is_dir():
            log.warning("Database driver directory %s does not exist; no drivers copied", source)
            return driver_dir
        shutil.copytree(source, driver_dir, dirs_exist_ok=True)
        log.debug("Copied database drivers from %s to %s", source, driver_dir)
        return driver_dir

    def _configure_nodes(self, context: BootstrapContext) -> None:
        log.info("Configuring nodes ...")
        for node in context.nodes.values():
            node.configure()
            if not node.start_dependencies():
                raise DependencyStartError(node.name)
        log.info("Nodes configured")

    def _select_bootstrapper(self, context: BootstrapContext) -> Optional[Distribution]:
        # authority-managed nodes are provisioned by the authority itself
        candidates = [
            node.spec.distribution
            for node in context.nodes.values()
            if node.spec.distribution.type != DistributionType.AUTHORITY
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda d: d.version_key)
