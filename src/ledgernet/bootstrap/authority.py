# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/bootstrap/authority.py

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Sequence

from .interface import BootstrapContext, BootstrapResult, run_step
from ..network.errors import BootstrapError
from ..node.interface import NodeSupervisor
from ..node.models import Distribution
from ..process.command import Command, JarCommand
from ..process.errors import CommandError
from ..process.monitor import interrupt_on_failure, stop_gracefully

log = logging.getLogger("ledgernet")

ROOT_TRUSTSTORE = "truststore/network-root-truststore.jks"


class AuthorityBootstrap:
    """
    Network bootstrap through a provisioning authority ("doorman"), using local
    signing and auto approval:

      0. copy the reference configuration into the authority work directory
      1. ROOT_KEYGEN            - root signing key store
      2. CA_KEYGEN              - CA key store
      3. registration service   - background, serves step 4
      4. notary registration    - node --initial-registration
      5. notary node-info       - node --just-generate-node-info
      6. network parameters     - authority --update-network-parameters
      7. authority service      - background, lives as long as the session
    """

    name = "authority"

    def __init__(self, distribution: Distribution):
        self.distribution = distribution

    def bootstrap(self, context: BootstrapContext) -> BootstrapResult:
        authority_jar = self._require(self.distribution.authority_jar, "authority tool")
        node_jar = self._require(self.distribution.node_jar, "node binary")
        notary = self._notary(context)
        work_dir = self._copy_reference_config(context)

        init_conf = work_dir / "node-init.conf"
        node_conf = work_dir / "node.conf"
        notary_dir = context.target_dir / notary.name
        services: List[Command] = []

        try:
            # 1-2: key stores for the local signer
            self._step(context, authority_jar, ["--config-file", str(init_conf), "--mode", "ROOT_KEYGEN"], "root-keygen")
            self._step(context, authority_jar, ["--config-file", str(init_conf), "--mode", "CA_KEYGEN"], "ca-keygen")

            # 3: authority service handling the notary's registration request
            registration = self._service(context, authority_jar, ["--config-file", str(init_conf)], "registration-service")
            services.append(registration)

            # 4-5: register the notary and produce its node-info file
            self._step(
                context,
                node_jar,
                [
                    "--initial-registration",
                    "--base-directory", str(notary_dir),
                    "--network-root-truststore", ROOT_TRUSTSTORE,
                    "--network-root-truststore-password", "",
                ],
                "notary-registration",
            )
            self._step(
                context,
                node_jar,
                ["--just-generate-node-info", "--base-directory", str(notary_dir)],
                "notary-node-info",
            )

            # 6: initial network parameters
            parameters = self._require(context.settings.network_parameters_file, "network parameters template")
            self._step(
                context,
                authority_jar,
                ["--config-file", str(node_conf), "--update-network-parameters", str(parameters)],
                "network-parameters",
            )
            services.remove(registration)
            stop_gracefully(registration, context.settings.service_grace)

            # 7: fully configured authority
            authority = self._service(context, authority_jar, ["--config-file", str(node_conf)], "authority-service")
            services.append(authority)
        except BaseException:
            for service in services:
                stop_gracefully(service, context.settings.service_grace)
            raise

        log.info("Authority bootstrap completed (notary=%s)", notary.name)
        return BootstrapResult(bootstrapped=True, services=services)

    # ------------------------- helpers -------------------------

    def _require(self, path: Path, what: str) -> Path:
        if not path.exists():
            raise BootstrapError(f"Missing {what}: {path}")
        return path

    def _notary(self, context: BootstrapContext) -> NodeSupervisor:
        for node in context.nodes.values():
            if node.spec.is_notary:
                return node
        raise BootstrapError("Authority bootstrap needs a node with a notary role")

    def _copy_reference_config(self, context: BootstrapContext) -> Path:
        source = context.settings.authority_config_dir
        destination = context.settings.authority_work_dir
        if not source.is_dir():
            raise BootstrapError(f"Missing authority reference configuration: {source}")
        shutil.copytree(source, destination, dirs_exist_ok=True)
        log.debug("Copied authority configuration %s -> %s", source, destination)
        return destination

    def _command(self, context: BootstrapContext, jar: Path, args: Sequence[str], label: str) -> JarCommand:
        return JarCommand(jar, args, working_dir=context.target_dir, timeout=context.timeout, label=label)

    def _step(self, context: BootstrapContext, jar: Path, args: Sequence[str], label: str) -> None:
        command = self._command(context, jar, args, label)
        run_step(context, command, label, f"Authority bootstrap step '{label}' failed")

    def _service(self, context: BootstrapContext, jar: Path, args: Sequence[str], label: str) -> Command:
        """
        Start a long-running step. It must still be alive after the grace
        period, or have exited successfully.
        """
        command = self._command(context, jar, args, label)
        log.info("[%s] starting service: %s", label, command)
        interrupt_on_failure(command, context.failure_predicate, label)
        try:
            command.start()
        except CommandError as e:
            raise BootstrapError(f"Authority service '{label}' could not start: {e}") from e

        grace = context.settings.service_grace
        if command.join(grace):
            ok = command.wait_for(grace)
            if context.on_command:
                context.on_command(label, command, ok)
            if not ok:
                raise BootstrapError(f"Authority service '{label}' exited during start-up (exit={command.exit_code})")
            log.warning("[%s] service returned immediately; continuing", label)
            return command

        if command.interrupted:
            stop_gracefully(command, grace)
            if context.on_command:
                context.on_command(label, command, False)
            raise BootstrapError(f"Authority service '{label}' reported an error during start-up")

        if context.on_command:
            context.on_command(label, command, True)
        log.info("[%s] service running (pid=%s)", label, command.pid)
        return command
