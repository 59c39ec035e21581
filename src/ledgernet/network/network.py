# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/network/network.py

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Iterator, List, Mapping, Optional

from .cleanup import CleanupPolicy, CleanupReport
from .errors import (
    BootstrapAlreadyRunError,
    BootstrapError,
    DependencyStartError,
    LivenessError,
    NetworkError,
    RpcProxyError,
    SignaledFailureError,
)
from .rpc_proxy import RpcProxy
from .state import SessionState, SessionStateMachine, TerminationSignal
from ..bootstrap.interface import BootstrapContext, BootstrapResult, BootstrapStrategy
from ..config.settings import NetworkSettings, load_settings
from ..logs.scanner import log_exception_matches
from ..node.interface import NodeFactory, NodeSupervisor
from ..node.models import Distribution
from ..observers.dispatcher import EventBus
from ..observers.logger import Observer
from ..observers.events import (
    BootstrapCompleted,
    BootstrapFailed,
    CleanupFinished,
    CommandFinished,
    NetworkStopped,
    NodesFailed,
    NodesRunning,
    NodeStarted,
    RpcProxyStarted,
    TerminationSignalled,
    new_ctx,
    now,
)
from ..process.command import Command
from ..process.monitor import FailurePredicate, contains_marker, stop_gracefully

log = logging.getLogger("ledgernet")

DEFAULT_TIMEOUT = 120.0

# node name -> supervisor, frozen once handed to a Network
Topology = Mapping[str, NodeSupervisor]


class Network:
    """
    An ephemeral test network: a fixed set of nodes, one bootstrap, one session.

    Lifecycle: created -> bootstrapped -> started -> running | failed -> stopped.
    A failed session never resumes; build a new one.
    """

    def __init__(
        self,
        nodes: Topology,
        target_dir: Path,
        timeout: float = DEFAULT_TIMEOUT,
        settings: Optional[NetworkSettings] = None,
        failure_predicate: Optional[FailurePredicate] = None,
        cleanup_on_stop: bool = False,
        always_clean: Optional[bool] = None,
        observers: Optional[List[Observer]] = None,
    ):
        self._nodes: Topology = MappingProxyType(dict(nodes))
        self.target_dir = Path(target_dir)
        self.timeout = float(timeout)
        self.settings = settings or load_settings()
        self.failure_predicate = failure_predicate or contains_marker(self.settings.error_marker)
        self.cleanup_on_stop = cleanup_on_stop
        self.always_clean = self.settings.always_clean if always_clean is None else always_clean

        self._session = SessionStateMachine()
        self._signal = TerminationSignal()
        self._rpc_proxy = RpcProxy(self.settings, self.timeout, self.failure_predicate)
        self._services: List[Command] = []
        self._strategy: Optional[BootstrapStrategy] = None
        self._cleaned = False
        self._lock = threading.Lock()

        self.bus = EventBus(observers or [])
        self._ctx = new_ctx(str(self.target_dir))

        if self.target_dir.exists() and not self.target_dir.is_dir():
            raise NetworkError(f"Target directory {self.target_dir} exists and is not a directory")
        self.target_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def new(
        distribution: Distribution,
        node_factory: NodeFactory,
        timeout: float = DEFAULT_TIMEOUT,
        settings: Optional[NetworkSettings] = None,
        observers: Optional[List[Observer]] = None,
    ):
        from .builder import NetworkBuilder

        return NetworkBuilder(distribution, node_factory, timeout=timeout, settings=settings, observers=observers)

    # ------------------------- state views -------------------------

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def error(self) -> Optional[BaseException]:
        return self._session.error

    @property
    def has_error(self) -> bool:
        return self._session.has_error

    @property
    def is_running(self) -> bool:
        return self.state in (SessionState.STARTED, SessionState.RUNNING)

    @property
    def is_stopped(self) -> bool:
        return self.state == SessionState.STOPPED

    @property
    def is_rpc_proxy_running(self) -> bool:
        return self._rpc_proxy.running

    @property
    def signalled(self) -> bool:
        return self._signal.fired

    @property
    def nodes(self) -> Topology:
        return self._nodes

    @property
    def services(self) -> List[Command]:
        return list(self._services)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def _emit(self, event_cls, **fields) -> None:
        self.bus.emit(event_cls(**{**self._ctx, "ts": now()}, **fields))

    # ------------------------- bootstrap -------------------------

    def bootstrap(self, strategy: BootstrapStrategy) -> BootstrapResult:
        """Run the session's one and only bootstrap."""
        with self._lock:
            if self._strategy is not None:
                raise BootstrapAlreadyRunError(f"Network already bootstrapped with '{self._strategy.name}'")
            self._strategy = strategy

        context = BootstrapContext(
            target_dir=self.target_dir,
            nodes=self._nodes,
            timeout=self.timeout,
            settings=self.settings,
            failure_predicate=self.failure_predicate,
            on_command=self._on_command,
        )
        log.info("Bootstrapping network in %s (%s)", self.target_dir, strategy.name)
        try:
            result = strategy.bootstrap(context)
        except DependencyStartError as e:
            # the session is dead, but there is nothing running to stop
            self._session.fail(e)
            log.error("%s; the network will not be started", e)
            log_exception_matches(self.target_dir)
            self._emit(BootstrapFailed, strategy=strategy.name, error=str(e))
            return BootstrapResult(bootstrapped=False)
        except Exception as e:
            self._emit(BootstrapFailed, strategy=strategy.name, error=str(e))
            if isinstance(e, BootstrapError):
                self._failure(e, cause=e.__cause__)
                raise
            error = BootstrapError(f"Bootstrap '{strategy.name}' failed: {e}")
            self._failure(error, cause=e)
            raise error from e

        self._services.extend(result.services)
        self._session.move(SessionState.BOOTSTRAPPED)
        self._emit(BootstrapCompleted, strategy=strategy.name, bootstrapped=result.bootstrapped)
        return result

    def _on_command(self, label: str, command: Command, ok: bool) -> None:
        self._emit(CommandFinished, label=label, command=str(command), ok=ok)

    # ------------------------- failure path -------------------------

    def _failure(
        self,
        error: NetworkError,
        cause: Optional[BaseException] = None,
        keep_alive: bool = False,
    ) -> NetworkError:
        """Record, log diagnostics, optionally wait out the keep-alive window, stop."""
        self._session.fail(error)
        log.warning("%s", error, exc_info=cause if cause is not error else None)
        log_exception_matches(self.target_dir)
        if keep_alive:
            self.signal(str(error))
            self.keep_alive(self.timeout)
        self.stop()
        return error

    # ------------------------- start / wait -------------------------

    def start(self) -> None:
        if not self._session.try_move(SessionState.STARTED):
            log.debug("start() ignored; network is %s", self.state.value)
            return
        for node in self._nodes.values():
            try:
                node.start()
            except Exception as e:
                error = NetworkError(f"Node '{node.name}' failed to start: {e}")
                self._failure(error, cause=e)
                raise error from e
            self._emit(NodeStarted, name=node.name)
            if node.spec.with_rpc_proxy and not self._rpc_proxy.running:
                self._start_rpc_proxy(node)

    def _start_rpc_proxy(self, node: NodeSupervisor) -> None:
        install_dir = node.spec.distribution.path
        port = node.spec.rpc_proxy_port
        try:
            self._rpc_proxy.start(install_dir, port)
        except RpcProxyError as e:
            self._failure(e, cause=e.__cause__)
            raise
        except OSError as e:
            error = RpcProxyError(f"Failed to bootstrap RPC proxy: {e}")
            self._failure(error, cause=e)
            raise error from e
        self._emit(RpcProxyStarted, install_dir=str(install_dir), port=port)

    def _wait_for_node(self, node: NodeSupervisor, timeout: float) -> bool:
        try:
            return bool(node.wait_until_running(timeout))
        except Exception as e:
            log.warning("Waiting for node %s failed: %s", node.name, e)
            return False

    def wait_until_running(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every node concurrently, each bounded by the same timeout.
        Any failure stops the whole network and returns False.
        """
        if self.has_error:
            return False
        wait = self.timeout if timeout is None else timeout

        failed: List[str] = []
        if self._nodes:
            with ThreadPoolExecutor(max_workers=len(self._nodes), thread_name_prefix="node-wait") as pool:
                futures = {
                    pool.submit(self._wait_for_node, node, wait): name
                    for name, node in self._nodes.items()
                }
                for future in as_completed(futures):
                    if not future.result():
                        failed.append(futures[future])

        if failed:
            failed.sort()
            error = LivenessError(
                f"{len(failed)} node(s) did not start up as expected within the given time frame: "
                + ", ".join(failed)
            )
            self._emit(NodesFailed, failed=failed, error=str(error))
            self._failure(error, keep_alive=True)
            return False

        # a concurrent signal_failure() wins over a late success
        if self.has_error:
            return False
        if self.state in (SessionState.CREATED, SessionState.BOOTSTRAPPED):
            # nodes were started outside start(); the session stays startable
            log.info("All nodes are running (network is still %s)", self.state.value)
        elif self.state == SessionState.RUNNING or self._session.try_move(SessionState.RUNNING):
            log.info("All nodes are running")
        else:
            return False
        self._emit(NodesRunning, nodes=list(self._nodes))
        return True

    # ------------------------- signalling -------------------------

    def signal(self, reason: Optional[str] = None) -> None:
        log.info("Sending termination signal ...")
        if self._signal.fire():
            self._emit(TerminationSignalled, reason=reason)

    def signal_failure(self, message: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        """Report a test failure: stop the network, then raise to the caller."""
        error = SignaledFailureError(message or "Signaling error to network ...")
        self._failure(error, cause=cause, keep_alive=True)
        raise error from cause

    def keep_alive(self, timeout: Optional[float] = None) -> bool:
        """Block until signalled or timed out, then stop. True when signalled."""
        wait = self.timeout if timeout is None else timeout
        log.info("Waiting for up to %d second(s) for termination signal ...", int(wait))
        signalled = self._signal.wait(wait)
        if signalled:
            log.info("Received termination signal")
        else:
            log.info("Timed out. No termination signal received during wait period")
        self.stop()
        return signalled

    # ------------------------- shutdown -------------------------

    def stop(self) -> None:
        with self._lock:
            if not self._session.try_move(SessionState.STOPPED):
                return
            log.info("Shutting down network ...")
            for node in self._nodes.values():
                try:
                    node.shut_down()
                except Exception as e:
                    log.warning("Failed to shut down node %s: %s", node.name, e)
            for service in self._services:
                try:
                    stop_gracefully(service, self.settings.service_grace)
                except Exception as e:
                    log.warning("Failed to stop service %s: %s", service.label, e)
            self._services.clear()
            self._emit(NetworkStopped, has_error=self.has_error)

        if self.cleanup_on_stop:
            self.cleanup()

    def cleanup(self) -> Optional[CleanupReport]:
        """Apply the cleanup policy once; stops the network first if needed."""
        with self._lock:
            if self._cleaned:
                return None
            self._cleaned = True
        self.stop()

        policy = CleanupPolicy(self.target_dir, self._nodes.keys(), always_clean=self.always_clean)
        try:
            report = policy.run(failed=self.has_error, rpc_proxy=self._rpc_proxy)
        except Exception as e:
            log.warning("Failed to cleanup runtime environment: %s", e, exc_info=True)
            return None
        self._emit(CleanupFinished, full=report.full, removed=len(report.removed), failures=len(report.failures))
        log.info("Network was shut down successfully")
        return report

    def use(self, action: Callable[["Network"], None]) -> None:
        self.start()
        try:
            action(self)
        finally:
            self.close()

    def close(self) -> None:
        self.stop()

    def __enter__(self) -> "Network":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    # ------------------------- topology access -------------------------

    def __iter__(self) -> Iterator[NodeSupervisor]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, name: str) -> NodeSupervisor:
        return self._nodes[name]

    def get(self, name: str) -> Optional[NodeSupervisor]:
        return self._nodes.get(name)

    def __repr__(self) -> str:
        return f"Network(target_dir={self.target_dir}, nodes={list(self._nodes)}, state={self.state.value})"
