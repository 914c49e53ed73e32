"""
Wallet provider: key generation/import and balance queries on Monad Testnet.
"""

import asyncio
import logging
from decimal import Decimal

from eth_account import Account
from web3 import Web3

from .errors import WalletError
from .models import Wallet

logger = logging.getLogger(__name__)

Account.enable_unaudited_hdwallet_features()

ERC20_ABI = [
    {"inputs": [{"internalType": "address", "name": "account", "type": "address"}], "name": "balanceOf", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "decimals", "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
]


class WalletProvider:
    def __init__(self, w3: Web3):
        self.w3 = w3

    def create_wallet(self, owner: str) -> Wallet:
        """Create a new wallet with a fresh mnemonic."""
        account, mnemonic = Account.create_with_mnemonic()
        return Wallet(owner=owner, address=account.address, private_key=Web3.to_hex(account.key), mnemonic=mnemonic)

    def import_from_key(self, owner: str, private_key: str) -> Wallet:
        try:
            account = Account.from_key(private_key.strip())
        except Exception as e:
            raise WalletError(f"Invalid private key: {e}") from e
        return Wallet(owner=owner, address=account.address, private_key=Web3.to_hex(account.key))

    def import_from_mnemonic(self, owner: str, mnemonic: str) -> Wallet:
        phrase = ' '.join(mnemonic.split())
        try:
            account = Account.from_mnemonic(phrase)
        except Exception as e:
            raise WalletError(f"Invalid mnemonic phrase: {e}") from e
        return Wallet(owner=owner, address=account.address, private_key=Web3.to_hex(account.key), mnemonic=phrase)

    def _native_balance(self, address: str) -> Decimal:
        balance_wei = self.w3.eth.get_balance(Web3.to_checksum_address(address))
        return Decimal(Web3.from_wei(balance_wei, 'ether'))

    def _token_balance(self, address: str, token_address: str) -> Decimal:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        raw = contract.functions.balanceOf(Web3.to_checksum_address(address)).call()
        decimals = contract.functions.decimals().call()
        return Decimal(raw) / (Decimal(10) ** decimals)

    async def get_native_balance(self, address: str) -> Decimal:
        """Get MON balance for an address."""
        try:
            return await asyncio.to_thread(self._native_balance, address)
        except Exception as e:
            logger.error(f"Error getting MON balance for {address}: {e}")
            raise WalletError(f"Failed to get balance: {e}") from e

    async def get_token_balance(self, address: str, token_address: str) -> Decimal:
        """Get ERC20 balance of token_address held by address, in whole tokens."""
        try:
            return await asyncio.to_thread(self._token_balance, address, token_address)
        except Exception as e:
            logger.error(f"Error getting token balance for {address}: {e}")
            raise WalletError(f"Failed to get token balance: {e}") from e
