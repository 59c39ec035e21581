# src/ledgernet/bootstrap/selection.py
from __future__ import annotations

from .authority import AuthorityBootstrap
from .interface import BootstrapStrategy
from .local import LocalBootstrap
from ..node.models import Distribution, DistributionType


def select_strategy(distribution: Distribution) -> BootstrapStrategy:
    if distribution.type == DistributionType.AUTHORITY:
        return AuthorityBootstrap(distribution)
    return LocalBootstrap()
