from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from monad_trader.config import Settings
from monad_trader.dispatcher import TradingDispatcher
from monad_trader.explorer import ExplorerClient
from monad_trader.models import Wallet
from monad_trader.session import SessionStore
from monad_trader.storage import WalletStore
from monad_trader.swap import SwapEngine
from monad_trader.wallets import WalletProvider

from tests.fakes import ADDRESS, PRIVATE_KEY, TOKEN, TX_HASH, USER_ID, FakeTransport


@pytest.fixture
def settings(tmp_path):
    return Settings(
        bot_token='123:test',
        router_address='0x' + '11' * 20,
        tx_explorer='https://explorer.test/tx/',
        database_path=str(tmp_path / 'wallets.db'),
    )


@pytest.fixture
def wallet_store(settings):
    return WalletStore(settings.database_path)


@pytest.fixture
def sessions():
    return SessionStore()


@pytest.fixture
def wallet_provider():
    """Real key handling, mocked chain queries."""
    provider = WalletProvider(MagicMock())
    provider.get_native_balance = AsyncMock(return_value=Decimal('10'))
    provider.get_token_balance = AsyncMock(return_value=Decimal('100'))
    return provider


@pytest.fixture
def swap_engine():
    engine = MagicMock(spec=SwapEngine)
    engine.get_token_info.return_value = TOKEN
    engine.quote.return_value = Decimal('1234.5')
    engine.execute_buy.return_value = TX_HASH
    engine.execute_sell.return_value = TX_HASH
    return engine


@pytest.fixture
def explorer():
    client = MagicMock(spec=ExplorerClient)
    client.get_wallet_tokens.return_value = []
    client.get_token_details.return_value = {'marketCap': '1000000', 'price': '0.5'}
    return client


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def dispatcher(settings, wallet_store, sessions, wallet_provider, swap_engine, explorer, transport):
    return TradingDispatcher(
        settings=settings,
        wallets=wallet_store,
        sessions=sessions,
        wallet_provider=wallet_provider,
        swap_engine=swap_engine,
        explorer=explorer,
        transport=transport,
    )


@pytest.fixture
def wallet(wallet_store):
    wallet = Wallet(owner=USER_ID, address=ADDRESS, private_key=PRIVATE_KEY)
    wallet_store.put(USER_ID, wallet)
    return wallet
