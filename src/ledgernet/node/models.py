# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/node/models.py

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DistributionType(str, Enum):
    LOCAL = "local"            # bootstrapped on disk with the network bootstrapper
    AUTHORITY = "authority"    # identities and parameters issued by a provisioning authority


class DatabaseType(str, Enum):
    H2 = "h2"
    POSTGRES = "postgres"
    SQL_SERVER = "sql-server"


class NotaryType(str, Enum):
    NONE = "none"
    VALIDATING = "validating"
    NON_VALIDATING = "non-validating"


def version_key(version: str) -> Tuple:
    """
    Sort key for dotted versions: "4.10" > "4.9", "4.0-SNAPSHOT" < "4.0.1".
    Numeric components compare as ints, anything else after them.
    """
    parts = []
    for token in re.split(r"[.\-_]", version):
        if token.isdigit():
            parts.append((0, int(token), ""))
        else:
            parts.append((1, 0, token))
    return tuple(parts)


class Distribution(BaseModel):
    """A build of the node/authority software installed under `path`."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    type: DistributionType = DistributionType.LOCAL
    path: Path

    @property
    def node_jar(self) -> Path:
        return self.path / "corda.jar"

    @property
    def network_bootstrapper(self) -> Path:
        return self.path / "network-bootstrapper.jar"

    @property
    def authority_jar(self) -> Path:
        return self.path / "doorman.jar"

    @property
    def version_key(self) -> Tuple:
        return version_key(self.version)

    def __str__(self) -> str:
        return f"{self.name}-{self.version} ({self.type.value})"


class NodeSpec(BaseModel):
    """
    Everything the orchestrator knows about a node before it exists.
    The compatibility zone URL only applies to authority distributions.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    distribution: Distribution
    database_type: DatabaseType = DatabaseType.H2
    notary_type: NotaryType = NotaryType.NONE
    issuable_currencies: Tuple[str, ...] = Field(default_factory=tuple)
    compatibility_zone_url: Optional[str] = None
    with_rpc_proxy: bool = False
    rpc_proxy_port: int = 13002

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("node name must not be blank")
        return v

    @model_validator(mode="before")
    @classmethod
    def _drop_cz_url_for_local(cls, data):
        if not isinstance(data, dict):
            return data
        dist = data.get("distribution")
        if isinstance(dist, Distribution):
            dist_type = dist.type
        else:
            dist_type = DistributionType((dist or {}).get("type", DistributionType.LOCAL))
        if dist_type != DistributionType.AUTHORITY:
            data = {**data, "compatibility_zone_url": None}
        return data

    @property
    def is_notary(self) -> bool:
        return self.notary_type != NotaryType.NONE
