# src/ledgernet/config/models.py

from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from ..node.models import DatabaseType, Distribution, NotaryType


class NodeConfig(BaseModel):
    name: str
    distribution: Optional[Distribution] = None   # defaults to the network's distribution
    database_type: DatabaseType = DatabaseType.H2
    notary_type: NotaryType = NotaryType.NONE
    issuable_currencies: List[str] = Field(default_factory=list)
    compatibility_zone_url: str = "http://localhost:1300"
    with_rpc_proxy: bool = False
    rpc_proxy_port: int = 13002


class NetworkConfig(BaseModel):
    distribution: Distribution
    nodes: List[NodeConfig]                  # a repeated name replaces the earlier entry
    timeout_seconds: float = 120.0
    cleanup_on_stop: bool = False
    always_clean: Optional[bool] = None      # None -> LEDGERNET_ALWAYS_CLEAN
    directory: Optional[str] = None          # None -> <runs_dir>/<timestamp>

    # Helper method
    def by_name(self) -> Dict[str, NodeConfig]:
        """
        Returns a dictionary mapping each node name to its NodeConfig.
        Later entries win, the same way the network builder treats them.
        """
        return {n.name: n for n in self.nodes}
