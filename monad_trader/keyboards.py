from typing import Sequence

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from .flow import SELL_PERCENTAGES


def get_main_keyboard():
    keyboard = [
        [InlineKeyboardButton("🔐 Wallet", callback_data="wallet"),
         InlineKeyboardButton("👛 My Wallet", callback_data="mywallet")],
        [InlineKeyboardButton("💰 Balance", callback_data="balance")],
        [InlineKeyboardButton("🛒 Buy", callback_data="buy"),
         InlineKeyboardButton("💱 Sell", callback_data="sell")],
        [InlineKeyboardButton("❓ Help", callback_data="help")]
    ]
    return InlineKeyboardMarkup(keyboard)


def get_wallet_menu_keyboard():
    keyboard = [
        [InlineKeyboardButton("Create New Wallet", callback_data="create_wallet")],
        [InlineKeyboardButton("Import from Private Key", callback_data="import_private_key")],
        [InlineKeyboardButton("Import from Mnemonic", callback_data="import_mnemonic")],
        [InlineKeyboardButton("Cancel", callback_data="cancel")]
    ]
    return InlineKeyboardMarkup(keyboard)


def get_my_wallet_keyboard():
    keyboard = [
        [InlineKeyboardButton("🔑 Show Private Key", callback_data="show_private_key")],
        [InlineKeyboardButton("🗑️ Delete Wallet", callback_data="delete_wallet")]
    ]
    return InlineKeyboardMarkup(keyboard)


def get_cancel_keyboard():
    return InlineKeyboardMarkup([[InlineKeyboardButton("❌ Cancel", callback_data="cancel")]])


def get_buy_amount_keyboard(amounts: Sequence[str]):
    presets = [InlineKeyboardButton(f"{amount} MON", callback_data=f"buy_{amount}") for amount in amounts]
    keyboard = [
        presets[:2],
        presets[2:] + [InlineKeyboardButton("Custom", callback_data="buy_custom")],
        [InlineKeyboardButton("Cancel", callback_data="cancel")]
    ]
    return InlineKeyboardMarkup(keyboard)


def get_sell_amount_keyboard():
    percentages = [InlineKeyboardButton(f"{pct}%", callback_data=f"sell_{pct}") for pct in SELL_PERCENTAGES]
    keyboard = [
        percentages[:2],
        percentages[2:] + [InlineKeyboardButton("Custom", callback_data="sell_custom")],
        [InlineKeyboardButton("Cancel", callback_data="cancel")]
    ]
    return InlineKeyboardMarkup(keyboard)


def get_confirm_keyboard(side: str):
    keyboard = [
        [InlineKeyboardButton("✅ Confirm", callback_data=f"confirm_{side}"),
         InlineKeyboardButton("❌ Cancel", callback_data="cancel")]
    ]
    return InlineKeyboardMarkup(keyboard)


def get_token_actions_keyboard(token_address: str):
    keyboard = [
        [InlineKeyboardButton("🛒 Buy", callback_data=f"buy_token_{token_address}"),
         InlineKeyboardButton("💰 Sell", callback_data=f"sell_token_{token_address}"),
         InlineKeyboardButton("❌ Cancel", callback_data="cancel")]
    ]
    return InlineKeyboardMarkup(keyboard)


def get_token_details_keyboard(token_address: str):
    keyboard = [
        [InlineKeyboardButton("🔄 Refresh", callback_data=f"refresh_{token_address}"),
         InlineKeyboardButton("💰 Sell", callback_data=f"sell_token_{token_address}")]
    ]
    return InlineKeyboardMarkup(keyboard)
