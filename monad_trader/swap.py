"""
Uniswap V2 swap engine for Monad Testnet.

Buys spend native MON through swapExactETHForTokens, sells go through
swapExactTokensForETH after making sure the router has enough allowance.
"""

import asyncio
import logging
import time
from decimal import Decimal

from eth_account import Account
from web3 import Web3

from .config import Settings
from .errors import SwapError
from .models import TokenInfo

logger = logging.getLogger(__name__)

MAX_UINT256 = 2 ** 256 - 1

ROUTER_ABI = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"}
        ],
        "name": "getAmountsOut",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountOutMin", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactETHForTokens",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "uint256", "name": "amountOutMin", "type": "uint256"},
            {"internalType": "address[]", "name": "path", "type": "address[]"},
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "deadline", "type": "uint256"}
        ],
        "name": "swapExactTokensForETH",
        "outputs": [{"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"}],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]

ERC20_ABI = [
    {"inputs": [], "name": "name", "outputs": [{"internalType": "string", "name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "symbol", "outputs": [{"internalType": "string", "name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "decimals", "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "owner", "type": "address"}, {"internalType": "address", "name": "spender", "type": "address"}], "name": "allowance", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "spender", "type": "address"}, {"internalType": "uint256", "name": "amount", "type": "uint256"}], "name": "approve", "outputs": [{"internalType": "bool", "name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"}
]


def to_base_units(amount, decimals: int) -> int:
    """Convert a human amount ("1.5") into integer token units."""
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


class SwapEngine:
    def __init__(self, w3: Web3, settings: Settings):
        self.w3 = w3
        self.settings = settings

    def _router(self):
        if not self.settings.router_address:
            raise SwapError("UNISWAP_V2_ROUTER is not configured")
        return self.w3.eth.contract(address=Web3.to_checksum_address(self.settings.router_address), abi=ROUTER_ABI)

    def _token(self, token_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    def _deadline(self) -> int:
        return int(time.time()) + self.settings.swap_deadline_seconds

    def _min_amount_out(self, expected_out: int) -> int:
        return expected_out * (100 - self.settings.slippage_percent) // 100

    def _send(self, transaction, private_key: str) -> str:
        """Sign, broadcast and wait for the receipt. Returns the 0x tx hash."""
        signed_txn = self.w3.eth.account.sign_transaction(transaction, private_key)
        tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        tx_hex = Web3.to_hex(tx_hash)
        if receipt['status'] != 1:
            raise SwapError(f"Transaction {tx_hex} reverted")
        return tx_hex

    def _get_token_info(self, token_address: str) -> TokenInfo:
        contract = self._token(token_address)
        return TokenInfo(
            address=Web3.to_checksum_address(token_address),
            name=contract.functions.name().call(),
            symbol=contract.functions.symbol().call(),
            decimals=contract.functions.decimals().call(),
        )

    def _quote(self, token_address: str, amount, is_buy: bool) -> Decimal:
        token = Web3.to_checksum_address(token_address)
        wmon = Web3.to_checksum_address(self.settings.wrapped_mon)
        decimals = self._token(token).functions.decimals().call()
        if is_buy:
            path, amount_in, out_decimals = [wmon, token], to_base_units(amount, 18), decimals
        else:
            path, amount_in, out_decimals = [token, wmon], to_base_units(amount, decimals), 18
        amounts = self._router().functions.getAmountsOut(amount_in, path).call()
        return Decimal(amounts[-1]) / (Decimal(10) ** out_decimals)

    def _buy(self, private_key: str, token_address: str, mon_amount: str) -> str:
        account = Account.from_key(private_key)
        router = self._router()
        token = Web3.to_checksum_address(token_address)
        path = [Web3.to_checksum_address(self.settings.wrapped_mon), token]
        amount_wei = to_base_units(mon_amount, 18)

        amounts = router.functions.getAmountsOut(amount_wei, path).call()
        min_amount_out = self._min_amount_out(amounts[-1])

        transaction = router.functions.swapExactETHForTokens(
            min_amount_out,
            path,
            account.address,
            self._deadline()
        ).build_transaction({
            'from': account.address,
            'value': amount_wei,
            'gas': self.settings.swap_gas_limit,
            'gasPrice': self.w3.eth.gas_price,
            'nonce': self.w3.eth.get_transaction_count(account.address),
            'chainId': self.settings.chain_id,
        })
        return self._send(transaction, private_key)

    def _sell(self, private_key: str, token_address: str, token_amount: str) -> str:
        account = Account.from_key(private_key)
        router = self._router()
        token_contract = self._token(token_address)
        path = [Web3.to_checksum_address(token_address), Web3.to_checksum_address(self.settings.wrapped_mon)]

        decimals = token_contract.functions.decimals().call()
        amount_in = to_base_units(token_amount, decimals)

        allowance = token_contract.functions.allowance(account.address, router.address).call()
        if allowance < amount_in:
            logger.info(f"Approving router to spend {path[0]} for {account.address}")
            approve_txn = token_contract.functions.approve(router.address, MAX_UINT256).build_transaction({
                'from': account.address,
                'gasPrice': self.w3.eth.gas_price,
                'nonce': self.w3.eth.get_transaction_count(account.address),
                'chainId': self.settings.chain_id,
            })
            self._send(approve_txn, private_key)

        amounts = router.functions.getAmountsOut(amount_in, path).call()
        min_amount_out = self._min_amount_out(amounts[-1])

        transaction = router.functions.swapExactTokensForETH(
            amount_in,
            min_amount_out,
            path,
            account.address,
            self._deadline()
        ).build_transaction({
            'from': account.address,
            'gas': self.settings.swap_gas_limit,
            'gasPrice': self.w3.eth.gas_price,
            'nonce': self.w3.eth.get_transaction_count(account.address),
            'chainId': self.settings.chain_id,
        })
        return self._send(transaction, private_key)

    async def get_token_info(self, token_address: str) -> TokenInfo:
        """Get token information (name, symbol, decimals)."""
        try:
            return await asyncio.to_thread(self._get_token_info, token_address)
        except Exception as e:
            logger.error(f"Error getting token info for {token_address}: {e}")
            raise SwapError(f"Failed to get token info: {e}") from e

    async def quote(self, token_address: str, amount, is_buy: bool = True) -> Decimal:
        """Expected output of a swap: tokens for a buy, MON for a sell."""
        try:
            return await asyncio.to_thread(self._quote, token_address, amount, is_buy)
        except Exception as e:
            logger.error(f"Error quoting {token_address}: {e}")
            raise SwapError(f"Failed to get quote: {e}") from e

    async def execute_buy(self, private_key: str, token_address: str, mon_amount: str) -> str:
        try:
            tx_hash = await asyncio.to_thread(self._buy, private_key, token_address, mon_amount)
        except Exception as e:
            logger.error(f"Error buying {token_address}: {e}")
            raise SwapError(f"Failed to buy token: {e}") from e
        logger.info(f"Buy of {token_address} for {mon_amount} MON sent: {tx_hash}")
        return tx_hash

    async def execute_sell(self, private_key: str, token_address: str, token_amount: str) -> str:
        try:
            tx_hash = await asyncio.to_thread(self._sell, private_key, token_address, token_amount)
        except Exception as e:
            logger.error(f"Error selling {token_address}: {e}")
            raise SwapError(f"Failed to sell token: {e}") from e
        logger.info(f"Sell of {token_amount} {token_address} sent: {tx_hash}")
        return tx_hash
