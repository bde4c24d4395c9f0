from __future__ import annotations

import asyncio
from typing import Any, Dict, List

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted
from web3.types import TxParams

from duncan.core.config import AppConfig
from duncan.core.errors import InvalidAddressError, VaultCallError
from duncan.core.logging import JsonLogger

# Only the managed-vault functions this service touches.
MANAGED_VAULT_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [],
        "name": "symbol",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "assetsInUse", "type": "uint256"}],
        "name": "setAssetsInUse",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


def checksum_address(address: str) -> str:
    if not Web3.is_address(address):
        raise InvalidAddressError("Invalid vault address")
    return Web3.to_checksum_address(address)


class VaultContract:
    def __init__(self, web3: Web3, address: str, private_key: str, chain_id: int, receipt_timeout_s: int = 120) -> None:
        self.web3 = web3
        self.address = checksum_address(address)
        self.account = Account.from_key(private_key)
        self.private_key = private_key
        self.chain_id = chain_id
        self.receipt_timeout_s = receipt_timeout_s
        self.contract = web3.eth.contract(address=self.address, abi=MANAGED_VAULT_ABI)
        self.log = JsonLogger(name="duncan.vault")

    @classmethod
    def from_config(cls, cfg: AppConfig, address: str) -> "VaultContract":
        vault = cfg.require_vault()
        web3 = Web3(Web3.HTTPProvider(vault.rpc_url))
        return cls(web3, address, cfg.credentials.secret_key, vault.chain_id, vault.receipt_timeout_s)

    async def symbol(self) -> str:
        return str(await asyncio.to_thread(self.contract.functions.symbol().call))

    async def decimals(self) -> int:
        return int(await asyncio.to_thread(self.contract.functions.decimals().call))

    async def set_assets_in_use(self, assets: int) -> str:
        return await asyncio.to_thread(self._send_set_assets_in_use, assets)

    def _send_set_assets_in_use(self, assets: int) -> str:
        sender = self.account.address
        fn = self.contract.functions.setAssetsInUse(assets)
        tx_params: TxParams = {
            "from": sender,
            "nonce": self.web3.eth.get_transaction_count(sender),
            "gasPrice": self.web3.eth.gas_price,
            "chainId": self.chain_id,
        }
        tx_params["gas"] = fn.estimate_gas({"from": sender})
        tx = fn.build_transaction(tx_params)
        signed = self.web3.eth.account.sign_transaction(tx, private_key=self.private_key)
        raw_tx = getattr(signed, "raw_transaction", None)
        if raw_tx is None:
            raw_tx = getattr(signed, "rawTransaction", None)
        if raw_tx is None:
            raise VaultCallError("Signed transaction missing raw transaction payload")
        tx_hash = self.web3.eth.send_raw_transaction(raw_tx)
        self.log.info("vault_tx_sent", vault=self.address, fn="setAssetsInUse", assets=assets, tx=tx_hash.hex())
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout_s)
        except TimeExhausted as e:
            raise VaultCallError(f"setAssetsInUse transaction {tx_hash.hex()} not confirmed within timeout") from e
        status = receipt.get("status") if hasattr(receipt, "get") else getattr(receipt, "status", 0)
        if status != 1:
            raise VaultCallError(f"setAssetsInUse transaction {tx_hash.hex()} failed with status {status}")
        return tx_hash.hex()
