"""
Conversation state machine.

decide() maps the user's current session and an inbound event to the Step
the dispatcher should run. It performs no I/O; the dispatcher executes the
step, talks to the collaborators and stores the resulting session.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from .errors import InvalidAmountError
from .session import Session, State

ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')

SELL_PERCENTAGES = (25, 50, 75, 100)
SELL_AMOUNT_PLACES = Decimal('0.000001')

# Amounts beyond these bounds cannot be real token quantities
MAX_FRACTION_DIGITS = 18
MAX_INTEGER_DIGITS = 30


class Action(Enum):
    START = 'start'
    HELP = 'help'
    WALLET_MENU = 'wallet_menu'
    CREATE_WALLET = 'create_wallet'
    PROMPT_PRIVATE_KEY = 'prompt_private_key'
    PROMPT_MNEMONIC = 'prompt_mnemonic'
    IMPORT_PRIVATE_KEY = 'import_private_key'
    IMPORT_MNEMONIC = 'import_mnemonic'
    MY_WALLET = 'my_wallet'
    SHOW_PRIVATE_KEY = 'show_private_key'
    DELETE_WALLET = 'delete_wallet'
    BALANCE = 'balance'
    BEGIN_BUY = 'begin_buy'
    BEGIN_SELL = 'begin_sell'
    SHOW_TOKEN = 'show_token'
    BUY_TOKEN_ADDRESS = 'buy_token_address'
    SELL_TOKEN_ADDRESS = 'sell_token_address'
    INVALID_ADDRESS = 'invalid_address'
    OPEN_BUY = 'open_buy'
    OPEN_SELL = 'open_sell'
    REFRESH_TOKEN = 'refresh_token'
    BUY_PRESET = 'buy_preset'
    BUY_CUSTOM_PROMPT = 'buy_custom_prompt'
    BUY_CUSTOM_AMOUNT = 'buy_custom_amount'
    SELL_PERCENT = 'sell_percent'
    SELL_CUSTOM_PROMPT = 'sell_custom_prompt'
    SELL_CUSTOM_AMOUNT = 'sell_custom_amount'
    CONFIRM_BUY = 'confirm_buy'
    CONFIRM_SELL = 'confirm_sell'
    CANCEL = 'cancel'
    NO_WALLET = 'no_wallet'
    IGNORE = 'ignore'


# Actions that need a wallet on record before they may run
WALLET_GATED = frozenset({
    Action.MY_WALLET,
    Action.SHOW_PRIVATE_KEY,
    Action.DELETE_WALLET,
    Action.BALANCE,
    Action.BEGIN_BUY,
    Action.BEGIN_SELL,
    Action.SHOW_TOKEN,
    Action.BUY_TOKEN_ADDRESS,
    Action.SELL_TOKEN_ADDRESS,
    Action.OPEN_BUY,
    Action.OPEN_SELL,
    Action.REFRESH_TOKEN,
    Action.BUY_CUSTOM_AMOUNT,
    Action.SELL_CUSTOM_AMOUNT,
    Action.CONFIRM_BUY,
    Action.CONFIRM_SELL,
})

COMMANDS = {
    'start': Action.START,
    'help': Action.HELP,
    'createwallet': Action.WALLET_MENU,
    'create_wallet': Action.CREATE_WALLET,
    'mywallet': Action.MY_WALLET,
    'balance': Action.BALANCE,
    'buy': Action.BEGIN_BUY,
    'sell': Action.BEGIN_SELL,
    'cancel': Action.CANCEL,
}

# Buttons that need no session
MENU_BUTTONS = {
    'wallet': Action.WALLET_MENU,
    'mywallet': Action.MY_WALLET,
    'balance': Action.BALANCE,
    'buy': Action.BEGIN_BUY,
    'sell': Action.BEGIN_SELL,
    'help': Action.HELP,
    'create_wallet': Action.CREATE_WALLET,
    'import_private_key': Action.PROMPT_PRIVATE_KEY,
    'import_mnemonic': Action.PROMPT_MNEMONIC,
    'show_private_key': Action.SHOW_PRIVATE_KEY,
    'delete_wallet': Action.DELETE_WALLET,
    'cancel': Action.CANCEL,
}

# Prefixes of buttons carrying a token address
TOKEN_BUTTONS = (
    ('buy_token_', Action.OPEN_BUY),
    ('sell_token_', Action.OPEN_SELL),
    ('refresh_', Action.REFRESH_TOKEN),
)

TEXT_STATES = {
    State.IMPORT_PRIVATE_KEY: Action.IMPORT_PRIVATE_KEY,
    State.IMPORT_MNEMONIC: Action.IMPORT_MNEMONIC,
    State.BUY_TOKEN: Action.INVALID_ADDRESS,
    State.SELL_TOKEN: Action.INVALID_ADDRESS,
    State.BUY_CUSTOM_AMOUNT: Action.BUY_CUSTOM_AMOUNT,
    State.SELL_CUSTOM_AMOUNT: Action.SELL_CUSTOM_AMOUNT,
}


@dataclass(frozen=True)
class Event:
    """
    One inbound chat event. Exactly one of command, text or button is set.
    """
    user_id: str
    chat_id: int
    command: Optional[str] = None
    text: Optional[str] = None
    button: Optional[str] = None
    callback_id: Optional[str] = None
    message_id: Optional[int] = None


@dataclass(frozen=True)
class Step:
    action: Action
    argument: Optional[str] = None


IGNORE = Step(Action.IGNORE)


def is_address(text: str) -> bool:
    return bool(ADDRESS_PATTERN.match(text))


def parse_amount(text: str) -> Decimal:
    """Parse a strictly positive, finite decimal amount."""
    try:
        amount = Decimal(text.strip())
    except (InvalidOperation, AttributeError):
        raise InvalidAmountError(f"Not a number: {text!r}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(f"Amount must be positive: {text!r}")
    if amount.as_tuple().exponent < -MAX_FRACTION_DIGITS or amount.adjusted() >= MAX_INTEGER_DIGITS:
        raise InvalidAmountError(f"Amount out of range: {text!r}")
    return amount


def format_amount(amount: Decimal) -> str:
    """Plain decimal notation, never scientific."""
    return format(amount, 'f')


def sell_percentage_amount(balance: Decimal, percentage: int) -> Decimal:
    """
    balance * percentage / 100 rounded half-up to six decimal places.

    Capped at the balance truncated to six places, so selling 100% never asks
    for more than the wallet holds.
    """
    balance = Decimal(balance)
    amount = (balance * Decimal(percentage) / Decimal(100)).quantize(SELL_AMOUNT_PLACES, rounding=ROUND_HALF_UP)
    return min(amount, balance.quantize(SELL_AMOUNT_PLACES, rounding=ROUND_DOWN))


def _state(session: Optional[Session]) -> Optional[State]:
    return session.state if session is not None else None


def _decide_command(command: str) -> Step:
    action = COMMANDS.get(command.lstrip('/').split('@')[0].lower())
    return Step(action) if action else IGNORE


def _decide_button(session: Optional[Session], data: str) -> Step:
    if data in MENU_BUTTONS:
        return Step(MENU_BUTTONS[data])

    for prefix, action in TOKEN_BUTTONS:
        if data.startswith(prefix):
            token_address = data[len(prefix):]
            return Step(action, token_address) if is_address(token_address) else IGNORE

    state = _state(session)

    if data == 'confirm_buy':
        if state == State.BUY_AMOUNT and session.pending_amount:
            return Step(Action.CONFIRM_BUY)
        return IGNORE

    if data == 'confirm_sell':
        if state == State.SELL_AMOUNT and session.pending_amount:
            return Step(Action.CONFIRM_SELL)
        return IGNORE

    if data.startswith('buy_'):
        if state != State.BUY_AMOUNT:
            return IGNORE
        choice = data[len('buy_'):]
        if choice == 'custom':
            return Step(Action.BUY_CUSTOM_PROMPT)
        try:
            return Step(Action.BUY_PRESET, format_amount(parse_amount(choice)))
        except InvalidAmountError:
            return IGNORE

    if data.startswith('sell_'):
        if state != State.SELL_AMOUNT:
            return IGNORE
        choice = data[len('sell_'):]
        if choice == 'custom':
            return Step(Action.SELL_CUSTOM_PROMPT)
        if choice.isdigit() and int(choice) in SELL_PERCENTAGES:
            return Step(Action.SELL_PERCENT, choice)
        return IGNORE

    return IGNORE


def _decide_text(session: Optional[Session], text: str, has_wallet: bool) -> Step:
    state = _state(session)

    if is_address(text):
        if not has_wallet:
            return Step(Action.NO_WALLET)
        if state == State.BUY_TOKEN:
            return Step(Action.BUY_TOKEN_ADDRESS, text)
        if state == State.SELL_TOKEN:
            return Step(Action.SELL_TOKEN_ADDRESS, text)
        # No session, or a flow not waiting for an address: ad-hoc lookup
        return Step(Action.SHOW_TOKEN, text)

    action = TEXT_STATES.get(state)
    return Step(action, text) if action else IGNORE


def decide(session: Optional[Session], event: Event, has_wallet: bool) -> Step:
    """Pick the step for event given the user's session and wallet."""
    if event.command is not None:
        step = _decide_command(event.command)
    elif event.button is not None:
        step = _decide_button(session, event.button)
    elif event.text is not None:
        step = _decide_text(session, event.text.strip(), has_wallet)
    else:
        step = IGNORE

    if step.action in WALLET_GATED and not has_wallet:
        return Step(Action.NO_WALLET)
    return step
