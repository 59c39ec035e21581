# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/network/errors.py
class NetworkError(RuntimeError):
    """Base class for test-network session failures."""

class InvalidTransitionError(NetworkError):
    """Raised when a session is moved between states out of order."""

class BootstrapError(NetworkError):
    """A required bootstrap step failed or a prerequisite file is missing."""

class BootstrapAlreadyRunError(NetworkError):
    """Raised when a session is asked to bootstrap a second time."""

class DependencyStartError(BootstrapError):
    """A node's dependency service failed before any node was started."""

    def __init__(self, node_name: str):
        super().__init__(f"Dependencies of node '{node_name}' failed to start")
        self.node_name = node_name

class LivenessError(NetworkError):
    """One or more nodes did not report ready within the timeout."""

class RpcProxyError(NetworkError):
    """The RPC proxy side-process failed to start."""

class SignaledFailureError(NetworkError):
    """A driving test reported a failure through the network."""
