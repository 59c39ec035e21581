import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from ledgernet.bootstrap.interface import BootstrapResult
from ledgernet.config.settings import NetworkSettings
from ledgernet.network.errors import (
    BootstrapAlreadyRunError,
    BootstrapError,
    DependencyStartError,
    LivenessError,
    NetworkError,
    RpcProxyError,
    SignaledFailureError,
)
from ledgernet.network.network import Network
from ledgernet.network.state import SessionState
from ledgernet.node.models import Distribution, DistributionType, NodeSpec
from ledgernet.observers.events import NodesFailed, NodesRunning, NetworkStopped, TerminationSignalled

# --------- Test doubles ----------


class FakeNode:
    def __init__(self, name: str, ready: bool = True, delay: float = 0.0, calls: Optional[List] = None,
                 spec: Optional[NodeSpec] = None):
        self.name = name
        self.spec = spec or NodeSpec(name=name, distribution=_dist())
        self.ready = ready
        self.delay = delay
        self.calls = calls if calls is not None else []
        self.shutdowns = 0

    def configure(self):
        self.calls.append(("configure", self.name))

    def start_dependencies(self):
        self.calls.append(("dependencies", self.name))
        return True

    def start(self):
        self.calls.append(("start", self.name))

    def wait_until_running(self, timeout):
        self.calls.append(("wait", self.name, timeout))
        if self.delay:
            time.sleep(self.delay)
        return self.ready

    def shut_down(self):
        self.shutdowns += 1
        self.calls.append(("shut_down", self.name))


class StubStrategy:
    name = "stub"

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.runs = 0

    def bootstrap(self, context):
        self.runs += 1
        if self.error:
            raise self.error
        return BootstrapResult(bootstrapped=True)


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


def _dist(tmp: Path = Path("/opt/dist")) -> Distribution:
    return Distribution(name="master", version="4.0", type=DistributionType.LOCAL, path=tmp)


def _settings(tmp_path: Path) -> NetworkSettings:
    return NetworkSettings(
        runs_dir=tmp_path / "runs",
        drivers_dir=tmp_path / "drivers",
        authority_config_dir=tmp_path / "doorman" / "configs",
        authority_work_dir=tmp_path / "runs" / "doorman",
        network_parameters_file=tmp_path / "doorman" / "network-parameters.conf",
        rpc_proxy_script=tmp_path / "startRPCproxy.sh",
        rpc_proxy_pid_file=tmp_path / "rpcProxy-pid",
        service_grace=0.5,
    )


def _network(tmp_path: Path, nodes: Dict[str, FakeNode], timeout: float = 2.0, **kw) -> Network:
    net = Network(nodes, tmp_path / "run", timeout=timeout, settings=_settings(tmp_path), **kw)
    net.bootstrap(StubStrategy())
    return net


# --------- Tests ----------


def test_all_nodes_ready_means_running(tmp_path: Path):
    cap = Capture()
    a, b = FakeNode("A"), FakeNode("B")
    net = _network(tmp_path, {"A": a, "B": b}, observers=[cap])
    assert net.state == SessionState.BOOTSTRAPPED

    net.start()
    assert net.is_running
    assert net.wait_until_running() is True
    assert net.state == SessionState.RUNNING
    assert not net.has_error
    assert any(isinstance(e, NodesRunning) for e in cap.events)


def test_one_node_not_ready_stops_everything(tmp_path: Path):
    cap = Capture()
    a, b = FakeNode("A"), FakeNode("B", ready=False)
    net = _network(tmp_path, {"A": a, "B": b}, observers=[cap])
    net.start()

    assert net.wait_until_running() is False
    assert net.has_error
    assert isinstance(net.error, LivenessError)
    assert "1 node(s)" in str(net.error)
    assert net.is_stopped
    assert a.shutdowns == 1 and b.shutdowns == 1
    assert net.signalled
    stopped = [e for e in cap.events if isinstance(e, NetworkStopped)]
    assert len(stopped) == 1 and stopped[0].has_error
    failed = next(e for e in cap.events if isinstance(e, NodesFailed))
    assert failed.failed == ["B"]
    assert any(isinstance(e, TerminationSignalled) for e in cap.events)


@pytest.mark.parametrize("ready", [
    (True, True, True),
    (False, True, True),
    (True, False, True),
    (False, False, False),
])
def test_wait_result_is_true_iff_all_nodes_ready(tmp_path: Path, ready):
    nodes = {f"N{i}": FakeNode(f"N{i}", ready=r) for i, r in enumerate(ready)}
    net = _network(tmp_path, nodes)
    net.start()
    assert net.wait_until_running() is all(ready)


def test_waits_run_concurrently(tmp_path: Path):
    nodes = {f"N{i}": FakeNode(f"N{i}", delay=0.5) for i in range(4)}
    net = _network(tmp_path, nodes)
    net.start()
    t0 = time.monotonic()
    assert net.wait_until_running() is True
    # four sequential waits would take two seconds
    assert time.monotonic() - t0 < 1.5


def test_wait_passes_timeout_to_each_node(tmp_path: Path):
    calls = []
    net = _network(tmp_path, {"A": FakeNode("A", calls=calls), "B": FakeNode("B", calls=calls)}, timeout=7)
    net.start()
    net.wait_until_running(3.5)
    waits = [c for c in calls if c[0] == "wait"]
    assert sorted(waits) == [("wait", "A", 3.5), ("wait", "B", 3.5)]


def test_node_wait_raising_counts_as_failure(tmp_path: Path):
    class Exploding(FakeNode):
        def wait_until_running(self, timeout):
            raise RuntimeError("node crashed")

    net = _network(tmp_path, {"A": FakeNode("A"), "B": Exploding("B")})
    net.start()
    assert net.wait_until_running() is False
    assert net.has_error


def test_failed_session_short_circuits_and_never_raises(tmp_path: Path):
    calls = []
    net = _network(tmp_path, {"A": FakeNode("A", calls=calls, ready=False)})
    net.start()
    assert net.wait_until_running() is False
    calls.clear()

    net.start()
    assert net.wait_until_running() is False
    assert calls == []


def test_start_is_sequential_and_idempotent(tmp_path: Path):
    calls = []
    nodes = {n: FakeNode(n, calls=calls) for n in ("A", "B", "C")}
    net = _network(tmp_path, nodes)
    net.start()
    net.start()
    assert [c for c in calls if c[0] == "start"] == [("start", "A"), ("start", "B"), ("start", "C")]


def test_stop_twice_shuts_down_once(tmp_path: Path):
    a, b = FakeNode("A"), FakeNode("B")
    net = _network(tmp_path, {"A": a, "B": b})
    net.start()
    net.stop()
    net.stop()
    net.close()
    assert a.shutdowns == 1 and b.shutdowns == 1
    assert net.state == SessionState.STOPPED


def test_stop_continues_when_a_node_fails_to_shut_down(tmp_path: Path):
    class Stubborn(FakeNode):
        def shut_down(self):
            raise RuntimeError("cannot stop")

    b = FakeNode("B")
    net = _network(tmp_path, {"A": Stubborn("A"), "B": b})
    net.start()
    net.stop()
    assert b.shutdowns == 1


def test_keep_alive_returns_at_timeout_without_signal(tmp_path: Path):
    a = FakeNode("A")
    net = _network(tmp_path, {"A": a})
    net.start()
    t0 = time.monotonic()
    assert net.keep_alive(0.3) is False
    elapsed = time.monotonic() - t0
    assert 0.25 <= elapsed < 2
    assert a.shutdowns == 1


def test_signal_unblocks_keep_alive_immediately(tmp_path: Path):
    net = _network(tmp_path, {"A": FakeNode("A")})
    net.start()
    threading.Timer(0.2, net.signal).start()
    t0 = time.monotonic()
    assert net.keep_alive(30) is True
    assert time.monotonic() - t0 < 5
    assert net.is_stopped


def test_signal_failure_stops_and_raises(tmp_path: Path):
    a = FakeNode("A")
    net = _network(tmp_path, {"A": a})
    net.start()
    cause = ValueError("assertion in test")
    with pytest.raises(SignaledFailureError) as exc:
        net.signal_failure("scenario failed", cause)
    assert exc.value.__cause__ is cause
    assert net.has_error and net.is_stopped
    assert a.shutdowns == 1
    with pytest.raises(SignaledFailureError):
        net.raise_for_error()


def test_raise_for_error_after_liveness_failure(tmp_path: Path):
    net = _network(tmp_path, {"A": FakeNode("A", ready=False)})
    net.start()
    assert net.wait_until_running() is False
    with pytest.raises(LivenessError):
        net.raise_for_error()


def test_use_stops_even_when_action_raises(tmp_path: Path):
    a = FakeNode("A")
    net = _network(tmp_path, {"A": a})

    def action(n):
        assert n.is_running
        raise RuntimeError("test body failed")

    with pytest.raises(RuntimeError):
        net.use(action)
    assert a.shutdowns == 1


def test_context_manager_closes(tmp_path: Path):
    a = FakeNode("A")
    with _network(tmp_path, {"A": a}) as net:
        net.start()
    assert a.shutdowns == 1


def test_bootstrap_runs_once(tmp_path: Path):
    net = _network(tmp_path, {"A": FakeNode("A")})
    with pytest.raises(BootstrapAlreadyRunError):
        net.bootstrap(StubStrategy())


def test_bootstrap_failure_stops_and_raises_before_start(tmp_path: Path):
    calls = []
    net = Network({"A": FakeNode("A", calls=calls)}, tmp_path / "run", settings=_settings(tmp_path))
    with pytest.raises(BootstrapError):
        net.bootstrap(StubStrategy(BootstrapError("tool failed")))
    assert net.has_error and net.is_stopped
    net.start()
    assert ("start", "A") not in calls


def test_unexpected_bootstrap_exception_is_wrapped(tmp_path: Path):
    net = Network({"A": FakeNode("A")}, tmp_path / "run", settings=_settings(tmp_path))
    with pytest.raises(BootstrapError) as exc:
        net.bootstrap(StubStrategy(OSError("disk full")))
    assert isinstance(exc.value.__cause__, OSError)


def test_dependency_failure_marks_session_failed_without_raising(tmp_path: Path):
    calls = []
    net = Network({"A": FakeNode("A", calls=calls)}, tmp_path / "run", settings=_settings(tmp_path))
    result = net.bootstrap(StubStrategy(DependencyStartError("A")))
    assert result.bootstrapped is False
    assert net.state == SessionState.FAILED
    net.start()
    assert net.wait_until_running() is False
    assert ("start", "A") not in calls


def test_target_directory_is_created_eagerly(tmp_path: Path):
    target = tmp_path / "deep" / "run"
    Network({}, target, settings=_settings(tmp_path))
    assert target.is_dir()


def test_target_directory_conflicting_with_file_is_rejected(tmp_path: Path):
    target = tmp_path / "run"
    target.write_text("not a directory")
    with pytest.raises(NetworkError):
        Network({}, target, settings=_settings(tmp_path))


def test_topology_is_frozen(tmp_path: Path):
    nodes = {"A": FakeNode("A")}
    net = _network(tmp_path, nodes)
    nodes["B"] = FakeNode("B")
    assert list(net.nodes) == ["A"]
    assert len(net) == 1
    assert net["A"].name == "A"
    assert net.get("B") is None
    with pytest.raises(TypeError):
        net.nodes["C"] = FakeNode("C")


def test_empty_network_is_trivially_running(tmp_path: Path):
    net = _network(tmp_path, {})
    net.start()
    assert net.wait_until_running() is True


def test_cleanup_on_stop_removes_successful_run(tmp_path: Path):
    net = _network(tmp_path, {"A": FakeNode("A")}, cleanup_on_stop=True)
    (net.target_dir / "A").mkdir()
    net.start()
    assert net.wait_until_running() is True
    net.stop()
    assert not net.target_dir.exists()


def test_cleanup_not_run_by_default(tmp_path: Path):
    net = _network(tmp_path, {"A": FakeNode("A")})
    net.start()
    net.stop()
    assert net.target_dir.exists()


def test_cleanup_runs_once_and_stops_first(tmp_path: Path):
    a = FakeNode("A")
    net = _network(tmp_path, {"A": a})
    net.start()
    report = net.cleanup()
    assert report is not None and report.full
    assert a.shutdowns == 1
    assert net.cleanup() is None


def test_wait_before_start_reports_ready_nodes(tmp_path: Path):
    cap = Capture()
    net = _network(tmp_path, {"A": FakeNode("A"), "B": FakeNode("B")}, observers=[cap])

    assert net.wait_until_running() is True
    assert not net.has_error
    assert net.state == SessionState.BOOTSTRAPPED
    assert any(isinstance(e, NodesRunning) for e in cap.events)

    # the session can still be started afterwards
    net.start()
    assert net.state == SessionState.STARTED


def test_wait_before_start_with_unready_node_fails(tmp_path: Path):
    a = FakeNode("A", ready=False)
    net = _network(tmp_path, {"A": a})
    assert net.wait_until_running() is False
    assert isinstance(net.error, LivenessError)
    assert net.is_stopped


# --------- RPC proxy ----------

LAUNCHER = """#!/bin/sh
echo "$1 $2" >> launches
sleep 30 >/dev/null 2>&1 &
echo $! > {pid_file}
echo "RPC proxy started"
{tail}
"""


def _launcher(tmp_path: Path, tail: str = "") -> NetworkSettings:
    settings = _settings(tmp_path)
    script = settings.rpc_proxy_script
    script.write_text(LAUNCHER.format(pid_file=settings.rpc_proxy_pid_file, tail=tail))
    script.chmod(0o755)
    return settings


def _proxy_node(tmp_path: Path, name: str, calls: List, with_proxy: bool = True, port: int = 13002) -> FakeNode:
    install = tmp_path / "dist"
    install.mkdir(exist_ok=True)
    dist = Distribution(name="master", version="4.0", path=install)
    spec = NodeSpec(name=name, distribution=dist, with_rpc_proxy=with_proxy, rpc_proxy_port=port)
    return FakeNode(name, calls=calls, spec=spec)


def test_rpc_proxy_launched_once_from_install_directory(tmp_path: Path):
    calls = []
    settings = _launcher(tmp_path)
    nodes = {
        "A": _proxy_node(tmp_path, "A", calls, with_proxy=False),
        "B": _proxy_node(tmp_path, "B", calls, port=14000),
        "C": _proxy_node(tmp_path, "C", calls),
    }
    net = Network(nodes, tmp_path / "run", timeout=10, settings=settings)
    net.bootstrap(StubStrategy())
    net.start()

    install = tmp_path / "dist"
    assert net.is_rpc_proxy_running
    assert (install / settings.rpc_proxy_script.name).exists()
    # one shared proxy, started with the first declaring node's settings
    assert (install / "launches").read_text().splitlines() == [f"{install} 14000"]
    assert settings.rpc_proxy_pid_file.exists()
    assert [c for c in calls if c[0] == "start"] == [("start", "A"), ("start", "B"), ("start", "C")]

    net.cleanup()
    assert not net.is_rpc_proxy_running
    assert not settings.rpc_proxy_pid_file.exists()


@pytest.mark.parametrize("tail", [
    "exit 3",
    'echo "java.net.BindException: Address already in use"',
])
def test_failing_rpc_proxy_stops_network_before_later_nodes(tmp_path: Path, tail):
    calls = []
    settings = _launcher(tmp_path, tail)
    nodes = {
        "A": _proxy_node(tmp_path, "A", calls),
        "B": _proxy_node(tmp_path, "B", calls, with_proxy=False),
    }
    net = Network(nodes, tmp_path / "run", timeout=10, settings=settings)
    net.bootstrap(StubStrategy())

    with pytest.raises(RpcProxyError):
        net.start()

    assert ("start", "A") in calls
    assert ("start", "B") not in calls
    assert net.has_error and net.is_stopped
    assert isinstance(net.error, RpcProxyError)
    assert not net.is_rpc_proxy_running


def test_missing_rpc_proxy_launcher_fails_start(tmp_path: Path):
    calls = []
    net = Network({"A": _proxy_node(tmp_path, "A", calls)}, tmp_path / "run", settings=_settings(tmp_path))
    net.bootstrap(StubStrategy())
    with pytest.raises(RpcProxyError, match="not found"):
        net.start()
    assert net.is_stopped
