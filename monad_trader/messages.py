"""
Message texts sent by the bot.

Texts returned here are Markdown (parse_mode='Markdown') unless noted.
"""

from decimal import Decimal
from typing import Dict, List

from telegram.helpers import escape_markdown

from .flow import format_amount
from .models import TokenInfo

WELCOME_TEXT = (
    "*Welcome to Monad Testnet Trading Bot!* 🚀\n\n"
    "This bot helps you trade tokens on Monad Testnet using Uniswap V2.\n\n"
    "⚠️ *Important:* This bot operates on Monad Testnet. Use only testnet tokens!\n\n"
    "Use /help to see available commands."
)

HELP_TEXT = (
    "*Monad Testnet Trading Bot Commands:*\n\n"
    "🚀 /start - Start the bot and see welcome message\n"
    "🔐 /createwallet - Manage your wallet (create new or import existing)\n"
    "👛 /mywallet - View your wallet details\n"
    "💰 /balance - Check your MON and token balances\n"
    "🛒 /buy - Buy tokens on Uniswap V2\n"
    "💱 /sell - Sell tokens on Uniswap V2\n"
    "❌ /cancel - Cancel the current operation\n"
    "❓ /help - Show this help message\n\n"
    "You can also paste a token contract address at any time."
)


def md(value) -> str:
    return escape_markdown(str(value))


def mon(amount: Decimal) -> str:
    return f"{amount:.6f} MON"


def wallet_created(address: str, private_key: str, mnemonic: str) -> str:
    return (
        f"✅ *New wallet created!*\n\n"
        f"*Address:* `{address}`\n\n"
        f"*Private Key:* `{private_key}`\n\n"
        f"*Mnemonic:* `{mnemonic}`\n\n"
        f"⚠️ *IMPORTANT:* Save your private key and mnemonic phrase securely. "
        f"Anyone with access to these can control your wallet."
    )


def wallet_imported(address: str) -> str:
    return f"✅ *Wallet imported successfully!*\n\n*Address:* `{address}`"


def my_wallet(address: str, balance: Decimal) -> str:
    return (
        f"👛 *Your Wallet*\n\n"
        f"*Address:* `{address}`\n\n"
        f"*MON Balance:* {mon(balance)}"
    )


def private_key(key: str) -> str:
    return f"*Your Private Key:*\n\n`{key}`\n\n⚠️ *NEVER share this with anyone!*"


def balance(address: str, mon_balance: Decimal, tokens: List[Dict]) -> str:
    text = (
        f"*Wallet Balance*\n\n"
        f"*Address:* `{address}`\n\n"
        f"*MON:* {mon(mon_balance)}\n\n"
    )
    if not tokens:
        return text + "*No tokens found in this wallet*"

    text += "*ERC20 Tokens:*\n"
    for token in tokens:
        text += f"\n*{md(token.get('symbol', '?'))}*: {md(token.get('balance', '0'))} ({md(token.get('name', ''))})"
    return text


def _market_line(details: Dict, key: str) -> str:
    value = details.get(key)
    if value in (None, ''):
        return 'Unknown'
    try:
        return f"${Decimal(str(value)):,}"
    except ArithmeticError:
        return 'Unknown'


def token_overview(token: TokenInfo, details: Dict, token_balance: Decimal, mon_balance: Decimal) -> str:
    return (
        f"*Token found: {md(token.name)} ({md(token.symbol)})*\n\n"
        f"💰 *Market Cap:* {md(_market_line(details, 'marketCap'))}\n"
        f"💲 *Price:* {md(_market_line(details, 'price'))}\n\n"
        f"*Your Balance:* {format_amount(token_balance)} {md(token.symbol)}\n"
        f"*Your MON:* {mon(mon_balance)}\n\n"
        f"What would you like to do with this token?"
    )


def token_details(token: TokenInfo, details: Dict, token_balance: Decimal) -> str:
    return (
        f"*{md(token.name)} ({md(token.symbol)}) Details*\n\n"
        f"💰 *Market Cap:* {md(_market_line(details, 'marketCap'))}\n"
        f"💲 *Price:* {md(_market_line(details, 'price'))}\n\n"
        f"*Your Balance:* {format_amount(token_balance)} {md(token.symbol)}"
    )


def buy_prompt(mon_balance: Decimal) -> str:
    return (
        f"*Your MON balance:* {mon(mon_balance)}\n\n"
        f"Please enter the contract address of the token you want to buy:"
    )


def buy_amount_prompt(token: TokenInfo) -> str:
    return (
        f"*Token:* {md(token.symbol)} ({md(token.name)})\n"
        f"*Address:* `{token.address}`\n\n"
        f"How much MON do you want to spend?"
    )


def sell_amount_prompt(token: TokenInfo, token_balance: Decimal) -> str:
    return (
        f"*Token:* {md(token.symbol)} ({md(token.name)})\n"
        f"*Balance:* {format_amount(token_balance)} {md(token.symbol)}\n\n"
        f"How much do you want to sell?"
    )


def nothing_to_sell(token: TokenInfo) -> str:
    return f"You don't have any {md(token.symbol)} tokens to sell."


def confirm_buy(token: TokenInfo, amount: str, estimate=None) -> str:
    text = f"You are about to buy *{md(token.symbol)}* with *{amount} MON*.\n\n"
    if estimate is not None:
        text += f"Estimated output: ~{estimate:.6f} {md(token.symbol)}\n\n"
    return text + "Do you want to proceed?"


def confirm_sell(token: TokenInfo, amount: str, percentage=None, estimate=None) -> str:
    text = f"You are about to sell *{amount} {md(token.symbol)}*"
    if percentage is not None:
        text += f" ({percentage}% of your balance)"
    text += ".\n\n"
    if estimate is not None:
        text += f"Estimated output: ~{mon(estimate)}\n\n"
    return text + "Do you want to proceed?"


def buy_processing(token: TokenInfo, amount: str) -> str:
    return (
        f"⏳ Processing your purchase of {md(token.symbol)}...\n"
        f"Amount: {amount} MON\n\n"
        f"Please wait, this may take a moment."
    )


def sell_processing(token: TokenInfo, amount: str) -> str:
    return (
        f"⏳ Processing your sale of {amount} {md(token.symbol)}...\n\n"
        f"Please wait, this may take a moment."
    )


def buy_success(token: TokenInfo, amount: str, tx_url: str) -> str:
    return (
        f"✅ *Purchase Successful!*\n\n"
        f"Bought {md(token.symbol)} for {amount} MON\n\n"
        f"[View Transaction]({tx_url})"
    )


def sell_success(token: TokenInfo, amount: str, tx_url: str) -> str:
    return (
        f"✅ *Sale Successful!*\n\n"
        f"Sold {amount} {md(token.symbol)} for MON\n\n"
        f"[View Transaction]({tx_url})"
    )


# Plain-text messages: these embed collaborator error text verbatim

def transaction_failed(error) -> str:
    return f"❌ Transaction failed: {error}"


def lookup_failed(error) -> str:
    return f"Error fetching token info: {error}"


def insufficient_balance(insufficient_text: str, available: Decimal, symbol: str) -> str:
    return f"{insufficient_text} Your balance: {format_amount(available)} {symbol}"


def handler_error(error) -> str:
    return f"❌ Error\n\n{error}\n\nPlease try again or use /help for assistance."
