"""
Per-user conversation sessions.

A user has at most one Session. Having no session is the IDLE state.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from .models import TokenInfo

logger = logging.getLogger(__name__)


class State(str, Enum):
    WALLET_MENU = 'WALLET_MENU'
    IMPORT_PRIVATE_KEY = 'IMPORT_PRIVATE_KEY'
    IMPORT_MNEMONIC = 'IMPORT_MNEMONIC'
    BUY_TOKEN = 'BUY_TOKEN'
    BUY_AMOUNT = 'BUY_AMOUNT'
    BUY_CUSTOM_AMOUNT = 'BUY_CUSTOM_AMOUNT'
    SELL_TOKEN = 'SELL_TOKEN'
    SELL_AMOUNT = 'SELL_AMOUNT'
    SELL_CUSTOM_AMOUNT = 'SELL_CUSTOM_AMOUNT'


@dataclass
class Session:
    """
    In-progress conversation for one user.

    BUY_AMOUNT/BUY_CUSTOM_AMOUNT carry token_address and token_info.
    SELL_AMOUNT/SELL_CUSTOM_AMOUNT additionally carry token_balance, the
    balance captured when the sell flow began. pending_amount is set once an
    amount has been chosen and BUY_AMOUNT/SELL_AMOUNT then double as the
    awaiting-confirmation state.
    """
    state: State
    token_address: Optional[str] = None
    token_info: Optional[TokenInfo] = None
    token_balance: Optional[Decimal] = None
    pending_amount: Optional[str] = None


class SessionStore:
    """
    In-memory map of user id to Session.

    All access happens on the bot's event loop and no method awaits, so each
    call is atomic with respect to other handlers.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def get(self, user_id: str) -> Optional[Session]:
        return self._sessions.get(user_id)

    def set(self, user_id: str, session: Session):
        logger.debug(f"Session for {user_id} -> {session.state.value}")
        self._sessions[user_id] = session

    def clear(self, user_id: str):
        if self._sessions.pop(user_id, None) is not None:
            logger.debug(f"Session for {user_id} cleared")

    def __len__(self):
        return len(self._sessions)
