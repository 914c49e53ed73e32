"""Exceptions and user-facing error texts."""

ERROR_MESSAGES = {
    'WALLET_NOT_FOUND': '❌ No wallet found. Please create or import a wallet first using /createwallet.',
    'INVALID_ADDRESS': '❌ Invalid address format. Please provide a valid token contract address.',
    'INVALID_PRIVATE_KEY': '❌ Invalid private key format. Please check and try again.',
    'INVALID_MNEMONIC': '❌ Invalid mnemonic phrase. Please check and try again.',
    'INSUFFICIENT_BALANCE': '❌ Insufficient balance for this transaction.',
    'INVALID_AMOUNT': '❌ Invalid amount. Please enter a valid positive number.',
    'TRANSACTION_IN_PROGRESS': '⏳ A transaction is already being processed. Please wait for it to finish.',
    'GENERAL_ERROR': '❌ An error occurred. Please try again or use /help for assistance.',
}


class TradingBotError(Exception):
    """Base class for errors raised by the bot's collaborators."""


class WalletError(TradingBotError):
    """Key import or balance lookup failed."""


class SwapError(TradingBotError):
    """Token lookup, quote or swap execution failed."""


class InvalidAmountError(TradingBotError, ValueError):
    """User supplied an amount that is not a strictly positive number."""
