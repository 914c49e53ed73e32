"""
Dispatcher behaviour: flows end to end against a recording transport and
mocked chain collaborators.
"""

import asyncio
import sqlite3
from decimal import Decimal

import pytest

from monad_trader.errors import ERROR_MESSAGES, SwapError, WalletError
from monad_trader.session import Session, State
from monad_trader.storage import WalletStore

from tests.fakes import (
    ADDRESS,
    PRIVATE_KEY,
    TOKEN_ADDRESS,
    TX_HASH,
    USER_ID,
    button,
    callback_data,
    command,
    text,
)

pytestmark = pytest.mark.asyncio


async def wait_until(predicate, attempts=50):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError('condition never became true')


async def open_buy(dispatcher):
    await dispatcher.dispatch(button(f"buy_token_{TOKEN_ADDRESS}"))


async def open_sell(dispatcher):
    await dispatcher.dispatch(button(f"sell_token_{TOKEN_ADDRESS}"))


class TestGeneral:
    async def test_cancel_without_session_is_harmless(self, dispatcher, sessions, transport):
        await dispatcher.dispatch(button('cancel'))
        await dispatcher.dispatch(command('cancel'))

        assert sessions.get(USER_ID) is None
        assert transport.texts == ['Operation cancelled.', 'Operation cancelled.']

    async def test_callbacks_are_answered(self, dispatcher, transport):
        await dispatcher.dispatch(button('help'))
        assert transport.answered == ['cb-help']

    async def test_stale_confirmation_is_silently_ignored(self, dispatcher, wallet, transport, swap_engine):
        await dispatcher.dispatch(button('confirm_buy'))

        assert transport.answered == ['cb-confirm_buy']
        assert transport.outbox == []
        swap_engine.execute_buy.assert_not_called()

    async def test_wallet_actions_need_a_wallet(self, dispatcher, transport):
        await dispatcher.dispatch(command('buy'))
        await dispatcher.dispatch(text(TOKEN_ADDRESS))

        assert transport.texts == [ERROR_MESSAGES['WALLET_NOT_FOUND']] * 2

    async def test_handler_exception_reaches_only_that_user(self, dispatcher, wallet, explorer, sessions, transport):
        sessions.set('other-user', Session(State.SELL_TOKEN))
        explorer.get_wallet_tokens.side_effect = RuntimeError('explorer exploded')

        await dispatcher.dispatch(command('balance'))

        assert transport.last.kind == 'send'
        assert transport.last.text.startswith('❌ Error')
        assert 'explorer exploded' in transport.last.text
        assert sessions.get('other-user').state is State.SELL_TOKEN

    async def test_start_shows_main_menu(self, dispatcher, transport):
        await dispatcher.dispatch(command('start'))
        assert 'wallet' in callback_data(transport.last.reply_markup)


class TestWallets:
    async def test_create_wallet_is_persisted(self, dispatcher, wallet_store, settings, transport):
        await dispatcher.dispatch(button('create_wallet'))

        wallet = wallet_store.get(USER_ID)
        assert wallet is not None and wallet.mnemonic
        assert wallet.address in transport.last.text

        reopened = WalletStore(settings.database_path)
        assert reopened.load() == 1
        assert reopened.get(USER_ID).address == wallet.address

    async def test_import_private_key_then_balance(self, dispatcher, wallet_store, wallet_provider, sessions,
                                                   transport):
        await dispatcher.dispatch(button('import_private_key'))
        assert sessions.get(USER_ID).state is State.IMPORT_PRIVATE_KEY

        await dispatcher.dispatch(text(PRIVATE_KEY, message_id=7))

        assert transport.deleted == [7]
        assert wallet_store.get(USER_ID).address == ADDRESS
        assert sessions.get(USER_ID) is None

        await dispatcher.dispatch(command('balance'))

        wallet_provider.get_native_balance.assert_awaited_with(ADDRESS)
        assert transport.last.kind == 'edit'
        assert '10.000000 MON' in transport.last.text

    async def test_invalid_private_key_keeps_prompting(self, dispatcher, wallet_store, sessions, transport):
        await dispatcher.dispatch(button('import_private_key'))
        await dispatcher.dispatch(text('0x1234', message_id=8))

        assert transport.deleted == [8]
        assert wallet_store.get(USER_ID) is None
        assert sessions.get(USER_ID).state is State.IMPORT_PRIVATE_KEY
        assert transport.last.text == ERROR_MESSAGES['INVALID_PRIVATE_KEY']

    async def test_import_mnemonic(self, dispatcher, wallet_store, transport):
        await dispatcher.dispatch(button('import_mnemonic'))
        await dispatcher.dispatch(text('test test test test test test test test test test test junk'))

        assert wallet_store.get(USER_ID).address == '0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266'

    async def test_delete_wallet(self, dispatcher, wallet, wallet_store, settings):
        wallet_store.persist()

        await dispatcher.dispatch(button('delete_wallet'))

        assert wallet_store.get(USER_ID) is None
        assert WalletStore(settings.database_path).load() == 0

    async def test_my_wallet_balance_failure(self, dispatcher, wallet, wallet_provider, transport):
        wallet_provider.get_native_balance.side_effect = WalletError('Failed to get balance: rpc down')

        await dispatcher.dispatch(command('mywallet'))

        assert transport.last.kind == 'edit'
        assert 'rpc down' in transport.last.text


class TestTokenLookup:
    async def test_address_without_session_shows_overview(self, dispatcher, wallet, sessions, transport):
        await dispatcher.dispatch(text(TOKEN_ADDRESS))

        assert sessions.get(USER_ID) is None
        assert transport.last.kind == 'edit'
        assert 'Token found: Chog (CHOG)' in transport.last.text
        assert callback_data(transport.last.reply_markup) == [
            f"buy_token_{TOKEN_ADDRESS}", f"sell_token_{TOKEN_ADDRESS}", 'cancel'
        ]

    async def test_address_supersedes_unrelated_flow(self, dispatcher, wallet, sessions):
        await open_buy(dispatcher)
        assert sessions.get(USER_ID).state is State.BUY_AMOUNT

        await dispatcher.dispatch(text(TOKEN_ADDRESS))

        assert sessions.get(USER_ID) is None

    async def test_refresh_sends_details(self, dispatcher, wallet, transport):
        await dispatcher.dispatch(button(f"refresh_{TOKEN_ADDRESS}"))

        assert len(transport.deleted) == 1
        assert 'Chog (CHOG) Details' in transport.last.text
        assert f"refresh_{TOKEN_ADDRESS}" in callback_data(transport.last.reply_markup)


class TestBuyFlow:
    async def test_buy_token_address_advances_flow(self, dispatcher, wallet, sessions, transport):
        await dispatcher.dispatch(command('buy'))
        assert sessions.get(USER_ID).state is State.BUY_TOKEN

        await dispatcher.dispatch(text(TOKEN_ADDRESS))

        session = sessions.get(USER_ID)
        assert session.state is State.BUY_AMOUNT
        assert session.token_info.symbol == 'CHOG'
        assert callback_data(transport.last.reply_markup) == [
            'buy_1', 'buy_5', 'buy_10', 'buy_50', 'buy_custom', 'cancel'
        ]

    async def test_begin_buy_with_empty_wallet(self, dispatcher, wallet, wallet_provider, sessions, transport):
        wallet_provider.get_native_balance.return_value = Decimal('0')

        await dispatcher.dispatch(command('buy'))

        assert sessions.get(USER_ID) is None
        assert transport.last.text.startswith(ERROR_MESSAGES['INSUFFICIENT_BALANCE'])

    async def test_invalid_address_keeps_waiting(self, dispatcher, wallet, sessions, transport):
        await dispatcher.dispatch(command('buy'))
        await dispatcher.dispatch(text('not an address'))

        assert sessions.get(USER_ID).state is State.BUY_TOKEN
        assert transport.last.text == ERROR_MESSAGES['INVALID_ADDRESS']

    async def test_lookup_failure_keeps_state(self, dispatcher, wallet, swap_engine, sessions, transport):
        swap_engine.get_token_info.side_effect = SwapError('Failed to get token info: not a contract')
        await dispatcher.dispatch(command('buy'))

        await dispatcher.dispatch(text(TOKEN_ADDRESS))

        assert sessions.get(USER_ID).state is State.BUY_TOKEN
        assert transport.last.text == 'Error fetching token info: Failed to get token info: not a contract'

    async def test_preset_stages_confirmation(self, dispatcher, wallet, sessions, transport):
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_5'))

        session = sessions.get(USER_ID)
        assert session.state is State.BUY_AMOUNT
        assert session.pending_amount == '5'
        assert 'Estimated output: ~1234.500000 CHOG' in transport.last.text
        assert callback_data(transport.last.reply_markup) == ['confirm_buy', 'cancel']

    async def test_confirmation_without_quote(self, dispatcher, wallet, swap_engine, sessions, transport):
        swap_engine.quote.side_effect = SwapError('no liquidity')
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_10'))

        assert sessions.get(USER_ID).pending_amount == '10'
        assert 'Estimated output' not in transport.last.text

    @pytest.mark.parametrize('raw', ['0', '-1', 'abc'])
    async def test_custom_amount_rejects(self, dispatcher, wallet, sessions, transport, raw):
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_custom'))

        await dispatcher.dispatch(text(raw))

        assert sessions.get(USER_ID).state is State.BUY_CUSTOM_AMOUNT
        assert transport.last.text == ERROR_MESSAGES['INVALID_AMOUNT']

    async def test_custom_amount_with_huge_exponent_is_rejected(self, dispatcher, wallet, sessions, transport):
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_custom'))

        await dispatcher.dispatch(text('1e-20000000'))

        session = sessions.get(USER_ID)
        assert session.state is State.BUY_CUSTOM_AMOUNT
        assert session.pending_amount is None
        assert transport.last.text == ERROR_MESSAGES['INVALID_AMOUNT']

    @pytest.mark.parametrize('data', ['buy_1e-20000000', 'buy_7', 'buy_0.5'])
    async def test_buy_button_outside_presets_is_ignored(self, dispatcher, wallet, sessions, transport, swap_engine,
                                                         data):
        await open_buy(dispatcher)
        sent = len(transport.outbox)

        await dispatcher.dispatch(button(data))

        session = sessions.get(USER_ID)
        assert session.state is State.BUY_AMOUNT
        assert session.pending_amount is None
        assert len(transport.outbox) == sent
        swap_engine.quote.assert_not_called()

    async def test_custom_amount_accepted(self, dispatcher, wallet, sessions):
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_custom'))

        await dispatcher.dispatch(text('3.5'))

        session = sessions.get(USER_ID)
        assert session.state is State.BUY_AMOUNT
        assert session.pending_amount == '3.5'

    async def test_custom_amount_above_balance(self, dispatcher, wallet, sessions, transport):
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_custom'))

        await dispatcher.dispatch(text('20'))

        assert sessions.get(USER_ID).state is State.BUY_CUSTOM_AMOUNT
        assert transport.last.text == f"{ERROR_MESSAGES['INSUFFICIENT_BALANCE']} Your balance: 10 MON"

    async def test_confirm_buy_executes_and_follows_up(self, dispatcher, wallet, swap_engine, sessions, transport,
                                                      settings):
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_5'))

        await dispatcher.dispatch(button('confirm_buy'))

        swap_engine.execute_buy.assert_awaited_once_with(PRIVATE_KEY, TOKEN_ADDRESS, '5')
        assert sessions.get(USER_ID) is None
        assert not dispatcher.is_executing(USER_ID)

        success = transport.outbox[-2]
        assert success.kind == 'edit'
        assert 'Purchase Successful' in success.text
        assert f"https://explorer.test/tx/{TX_HASH}" in success.text

        follow_up = transport.last
        assert follow_up.kind == 'send'
        assert callback_data(follow_up.reply_markup) == [f"refresh_{TOKEN_ADDRESS}", f"sell_token_{TOKEN_ADDRESS}"]

        conn = sqlite3.connect(settings.database_path)
        rows = conn.execute("SELECT user_id, tx_hash, tx_type, amount, status FROM transactions").fetchall()
        conn.close()
        assert rows == [(USER_ID, TX_HASH, 'buy', '5', 'confirmed')]

    async def test_failed_buy_still_clears_session(self, dispatcher, wallet, swap_engine, sessions, transport):
        swap_engine.execute_buy.side_effect = SwapError('Transaction reverted')
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_5'))

        await dispatcher.dispatch(button('confirm_buy'))

        assert sessions.get(USER_ID) is None
        assert not dispatcher.is_executing(USER_ID)
        assert transport.last.kind == 'edit'
        assert transport.last.text == '❌ Transaction failed: Transaction reverted'

    async def test_second_confirmation_is_rejected_while_executing(self, dispatcher, wallet, swap_engine, sessions,
                                                                   transport):
        release = asyncio.Event()

        async def slow_buy(*args):
            await release.wait()
            return TX_HASH

        swap_engine.execute_buy.side_effect = slow_buy
        await open_buy(dispatcher)
        await dispatcher.dispatch(button('buy_5'))

        first = asyncio.create_task(dispatcher.dispatch(button('confirm_buy')))
        await wait_until(lambda: dispatcher.is_executing(USER_ID))

        await dispatcher.dispatch(button('confirm_buy'))
        assert transport.last.text == ERROR_MESSAGES['TRANSACTION_IN_PROGRESS']

        release.set()
        await first

        swap_engine.execute_buy.assert_awaited_once()
        assert not dispatcher.is_executing(USER_ID)

    async def test_cancel_during_lookup_discards_result(self, dispatcher, wallet, swap_engine, sessions, transport):
        release = asyncio.Event()
        info = swap_engine.get_token_info.return_value

        async def slow_lookup(token_address):
            await release.wait()
            return info

        swap_engine.get_token_info.side_effect = slow_lookup
        await dispatcher.dispatch(command('buy'))

        lookup = asyncio.create_task(dispatcher.dispatch(text(TOKEN_ADDRESS)))
        await wait_until(lambda: swap_engine.get_token_info.await_count == 1)

        await dispatcher.dispatch(command('cancel'))
        release.set()
        await lookup

        assert sessions.get(USER_ID) is None
        assert transport.last.text == 'Operation cancelled.'


class TestSellFlow:
    async def test_sell_token_address_snapshots_balance(self, dispatcher, wallet, sessions, transport):
        await dispatcher.dispatch(command('sell'))
        assert sessions.get(USER_ID).state is State.SELL_TOKEN

        await dispatcher.dispatch(text(TOKEN_ADDRESS))

        session = sessions.get(USER_ID)
        assert session.state is State.SELL_AMOUNT
        assert session.token_balance == Decimal('100')
        assert callback_data(transport.last.reply_markup) == [
            'sell_25', 'sell_50', 'sell_75', 'sell_100', 'sell_custom', 'cancel'
        ]

    async def test_nothing_to_sell(self, dispatcher, wallet, wallet_provider, sessions, transport):
        wallet_provider.get_token_balance.return_value = Decimal('0')
        await dispatcher.dispatch(command('sell'))

        await dispatcher.dispatch(text(TOKEN_ADDRESS))

        assert sessions.get(USER_ID).state is State.SELL_TOKEN
        assert transport.last.text == "You don't have any CHOG tokens to sell."

    async def test_percentage_then_confirm(self, dispatcher, wallet, swap_engine, sessions, transport):
        await open_sell(dispatcher)
        await dispatcher.dispatch(button('sell_25'))

        session = sessions.get(USER_ID)
        assert session.pending_amount == '25.000000'
        assert '(25% of your balance)' in transport.last.text

        await dispatcher.dispatch(button('confirm_sell'))

        swap_engine.execute_sell.assert_awaited_once_with(PRIVATE_KEY, TOKEN_ADDRESS, '25.000000')
        assert sessions.get(USER_ID) is None
        assert 'Sale Successful' in transport.last.text

    async def test_dust_percentage_rounds_to_smallest_unit(self, dispatcher, wallet, wallet_provider, sessions):
        wallet_provider.get_token_balance.return_value = Decimal('0.0000015')
        await open_sell(dispatcher)

        await dispatcher.dispatch(button('sell_50'))

        assert sessions.get(USER_ID).pending_amount == '0.000001'

    async def test_dust_balance_is_shown_in_plain_notation(self, dispatcher, wallet, wallet_provider, transport):
        wallet_provider.get_token_balance.return_value = Decimal(1) / Decimal(10) ** 18
        await open_sell(dispatcher)

        assert '*Balance:* 0.000000000000000001 CHOG' in transport.last.text
        assert 'E-' not in transport.last.text

        await dispatcher.dispatch(button('sell_custom'))
        assert '(max: 0.000000000000000001)' in transport.last.text

    async def test_custom_amount_bounded_by_snapshot(self, dispatcher, wallet, wallet_provider, sessions, transport):
        wallet_provider.get_token_balance.return_value = Decimal('10')
        await open_sell(dispatcher)
        await dispatcher.dispatch(button('sell_custom'))

        await dispatcher.dispatch(text('15'))

        assert sessions.get(USER_ID).state is State.SELL_CUSTOM_AMOUNT
        assert transport.last.text == f"{ERROR_MESSAGES['INSUFFICIENT_BALANCE']} Your balance: 10 CHOG"

    async def test_custom_amount_within_snapshot(self, dispatcher, wallet, wallet_provider, sessions):
        wallet_provider.get_token_balance.return_value = Decimal('10')
        await open_sell(dispatcher)
        await dispatcher.dispatch(button('sell_custom'))

        await dispatcher.dispatch(text('10'))

        session = sessions.get(USER_ID)
        assert session.state is State.SELL_AMOUNT
        assert session.pending_amount == '10'

    async def test_failed_sell_still_clears_session(self, dispatcher, wallet, swap_engine, sessions, transport):
        swap_engine.execute_sell.side_effect = RuntimeError('nonce too low')
        await open_sell(dispatcher)
        await dispatcher.dispatch(button('sell_100'))

        await dispatcher.dispatch(button('confirm_sell'))

        assert sessions.get(USER_ID) is None
        assert transport.last.text == '❌ Transaction failed: nonce too low'
