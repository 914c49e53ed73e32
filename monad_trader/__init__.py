"""Telegram trading assistant for Uniswap V2 swaps on Monad Testnet."""

__version__ = '1.0.0'
