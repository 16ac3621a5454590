# formchain/config.py
"""
Formchain Configuration

Environment-driven settings for the three external systems and the
per-system timeouts applied by the service layer.

Environment:
    FORMCHAIN_RPC_URL            JSON-RPC endpoint of the registry chain
    FORMCHAIN_CONTRACT_ADDRESS   deployed FormRegistry address
    FORMCHAIN_CHAIN_ID           chain id (auto-detected when unset)
    FORMCHAIN_IPFS_API           IPFS HTTP API multiaddr
    FORMCHAIN_NAME_SERVICE_URL   mutable-name service base URL
    FORMCHAIN_GATEWAY_URL        public gateway for share links
    FORMCHAIN_RECORD_LIFETIME    record validity in seconds
    FORMCHAIN_*_TIMEOUT          CONTENT / POINTER / CHAIN / SIGNER, seconds
    FORMCHAIN_LOG_LEVEL          logging level name
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_RECORD_LIFETIME = 365 * 24 * 3600
DEFAULT_IPFS_API = "/ip4/127.0.0.1/tcp/5001"
DEFAULT_NAME_SERVICE_URL = "https://name.web3.storage"
DEFAULT_GATEWAY_URL = "https://w3s.link"


@dataclass
class FormchainConfig:
    """
    Runtime configuration.

    Timeouts are independent because the systems have very different
    latency: uploads take seconds, chain writes wait for confirmation,
    wallet signatures wait on a human.
    """
    rpc_url: Optional[str] = None
    contract_address: Optional[str] = None
    chain_id: Optional[int] = None
    ipfs_api: str = DEFAULT_IPFS_API
    name_service_url: str = DEFAULT_NAME_SERVICE_URL
    gateway_url: str = DEFAULT_GATEWAY_URL
    record_lifetime: int = DEFAULT_RECORD_LIFETIME
    content_timeout: float = 60.0
    pointer_timeout: float = 30.0
    chain_timeout: float = 180.0
    signer_timeout: float = 300.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FormchainConfig":
        """Build config from FORMCHAIN_* variables."""
        env = os.environ if environ is None else environ

        def _get(key: str, default=None):
            value = env.get("FORMCHAIN_" + key)
            return value if value not in (None, "") else default

        chain_id = _get("CHAIN_ID")
        return cls(
            rpc_url=_get("RPC_URL"),
            contract_address=_get("CONTRACT_ADDRESS"),
            chain_id=int(chain_id) if chain_id is not None else None,
            ipfs_api=_get("IPFS_API", DEFAULT_IPFS_API),
            name_service_url=_get("NAME_SERVICE_URL", DEFAULT_NAME_SERVICE_URL),
            gateway_url=_get("GATEWAY_URL", DEFAULT_GATEWAY_URL),
            record_lifetime=int(_get("RECORD_LIFETIME", DEFAULT_RECORD_LIFETIME)),
            content_timeout=float(_get("CONTENT_TIMEOUT", 60.0)),
            pointer_timeout=float(_get("POINTER_TIMEOUT", 30.0)),
            chain_timeout=float(_get("CHAIN_TIMEOUT", 180.0)),
            signer_timeout=float(_get("SIGNER_TIMEOUT", 300.0)),
            log_level=_get("LOG_LEVEL", "INFO"),
        )

    def gateway_link(self, cid: str) -> str:
        """Public gateway URL for a content identifier."""
        return f"{self.gateway_url.rstrip('/')}/ipfs/{cid}"

    def ipns_gateway_link(self, name: str) -> str:
        """Public gateway URL for a mutable name."""
        return f"{self.gateway_url.rstrip('/')}/ipns/{name}"


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler for applications embedding formchain."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
