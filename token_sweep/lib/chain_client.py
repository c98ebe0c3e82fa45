"""
Read-only chain access used by the transfer builder.

Only two primitives are needed: simulating a call against current state and
reading a native balance.
"""

import logging
from typing import Any, Dict, Optional

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from .errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_RPC_TIMEOUT = 20  # seconds

# Anything an eth_call can raise when the call reverts or the node errors
SIMULATION_ERRORS = (Web3Exception, requests.RequestException, ValueError)


class Web3ChainClient:
    """web3.py-backed chain client for a single chain."""

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        web3: Optional[Web3] = None,
    ):
        self.chain_id = chain_id
        self.w3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))

    def simulate(self, tx: Dict[str, Any]) -> bool:
        """
        Execute a call read-only against the latest state.

        Args:
            tx: Mapping with `from`, `to`, optional `data` and `value`

        Returns:
            True if the call would succeed, False if it reverts or errors
        """
        params: Dict[str, Any] = {
            "from": Web3.to_checksum_address(tx["from"]),
            "to": Web3.to_checksum_address(tx["to"]),
            "value": int(tx.get("value") or 0),
        }
        if tx.get("data"):
            params["data"] = tx["data"]

        try:
            self.w3.eth.call(params)
        except SIMULATION_ERRORS as e:
            logger.debug("eth_call to %s failed: %s", params["to"], e)
            return False
        return True

    def get_balance(self, address: str) -> int:
        """
        Return the native balance of an address in wei.

        Raises:
            NetworkError: If the node cannot be reached or errors
        """
        try:
            return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))
        except SIMULATION_ERRORS as e:
            raise NetworkError(f"Failed to read native balance: {e}") from e
