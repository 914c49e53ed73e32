"""
Configuration for the Monad Testnet Trading Bot.

Values come from environment variables (optionally loaded from a .env file).
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_RPC_URL = 'https://testnet-rpc.monad.xyz'
DEFAULT_CHAIN_ID = 10143
DEFAULT_ROUTER_ADDRESS = None
DEFAULT_WRAPPED_MON = '0x760AfE86e5de5fa0Ee542fc7B7B713e1c5425701'
DEFAULT_TX_EXPLORER = 'https://testnet.monadexplorer.com/tx/'
DEFAULT_MONADSCAN_API_URL = 'https://api-testnet.monadscan.com/api'
DEFAULT_DATABASE_PATH = os.path.join('data', 'wallets.db')
DEFAULT_BUY_AMOUNTS = ('1', '5', '10', '50')


@dataclass(frozen=True)
class Settings:
    bot_token: Optional[str] = None
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = DEFAULT_CHAIN_ID
    router_address: Optional[str] = DEFAULT_ROUTER_ADDRESS
    wrapped_mon: str = DEFAULT_WRAPPED_MON
    tx_explorer: str = DEFAULT_TX_EXPLORER
    monadscan_api_url: str = DEFAULT_MONADSCAN_API_URL
    database_path: str = DEFAULT_DATABASE_PATH
    slippage_percent: int = 5
    swap_deadline_seconds: int = 1200
    swap_gas_limit: int = 500000
    buy_amounts: Tuple[str, ...] = field(default=DEFAULT_BUY_AMOUNTS)
    debug: bool = False
    log_file: Optional[str] = None


def _parse_buy_amounts(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return DEFAULT_BUY_AMOUNTS
    amounts = tuple(part.strip() for part in raw.split(',') if part.strip())
    for amount in amounts:
        if Decimal(amount) <= 0:
            raise ValueError(f"BUY_AMOUNTS entries must be positive, got {amount}")
    if len(amounts) != 4:
        raise ValueError(f"BUY_AMOUNTS must list exactly four amounts, got {len(amounts)}")
    return amounts


def load_settings() -> Settings:
    """Build Settings from the environment, reading .env first."""
    load_dotenv()

    bot_token = os.getenv('TELEGRAM_BOT_TOKEN') or os.getenv('BOT_TOKEN')
    if bot_token == 'YOUR_BOT_TOKEN_HERE':
        bot_token = None

    return Settings(
        bot_token=bot_token,
        rpc_url=os.getenv('MONAD_TESTNET_RPC', DEFAULT_RPC_URL),
        chain_id=int(os.getenv('CHAIN_ID', str(DEFAULT_CHAIN_ID))),
        router_address=os.getenv('UNISWAP_V2_ROUTER') or DEFAULT_ROUTER_ADDRESS,
        wrapped_mon=os.getenv('WRAPPED_MON', DEFAULT_WRAPPED_MON),
        tx_explorer=os.getenv('TX_EXPLORER', DEFAULT_TX_EXPLORER),
        monadscan_api_url=os.getenv('MONADSCAN_API_URL', DEFAULT_MONADSCAN_API_URL),
        database_path=os.getenv('DATABASE_PATH', DEFAULT_DATABASE_PATH),
        slippage_percent=int(os.getenv('SLIPPAGE_PERCENT', '5')),
        swap_deadline_seconds=int(os.getenv('SWAP_DEADLINE_SECONDS', '1200')),
        swap_gas_limit=int(os.getenv('SWAP_GAS_LIMIT', '500000')),
        buy_amounts=_parse_buy_amounts(os.getenv('BUY_AMOUNTS')),
        debug=os.getenv('DEBUG', 'false').lower() == 'true',
        log_file=os.getenv('LOG_FILE') or None,
    )


def setup_logging(debug: bool = False, log_file: Optional[str] = None):
    """Configure root logging for the bot process."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.DEBUG if debug else logging.INFO,
        handlers=handlers,
    )
    # httpx logs every polling request at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
