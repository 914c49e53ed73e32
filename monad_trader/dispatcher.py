"""
Routes inbound chat events through the conversation state machine.

The dispatcher owns no global state: wallets, sessions, collaborators and
the chat transport are injected. Every handler runs inside dispatch(), which
turns any escaping exception into an error message for that user only.
"""

import logging
from decimal import Decimal
from typing import Optional

from . import keyboards
from . import messages
from .config import Settings
from .errors import ERROR_MESSAGES, InvalidAmountError, SwapError, TradingBotError, WalletError
from .explorer import ExplorerClient
from .flow import Action, Event, Step, decide, format_amount, parse_amount, sell_percentage_amount
from .session import Session, SessionStore, State
from .storage import WalletStore
from .swap import SwapEngine
from .transport import ChatTransport
from .wallets import WalletProvider

logger = logging.getLogger(__name__)

MARKDOWN = 'Markdown'
CONFIRM_BUTTONS = ('confirm_buy', 'confirm_sell')


class TradingDispatcher:
    def __init__(self, settings: Settings, wallets: WalletStore, sessions: SessionStore,
                 wallet_provider: WalletProvider, swap_engine: SwapEngine, explorer: ExplorerClient,
                 transport: ChatTransport):
        self.settings = settings
        self.wallets = wallets
        self.sessions = sessions
        self.wallet_provider = wallet_provider
        self.swap = swap_engine
        self.explorer = explorer
        self.transport = transport
        # Users whose swap is currently executing
        self._in_flight = set()

        self._handlers = {
            Action.START: self.handle_start,
            Action.HELP: self.handle_help,
            Action.WALLET_MENU: self.handle_wallet_menu,
            Action.CREATE_WALLET: self.handle_create_wallet,
            Action.PROMPT_PRIVATE_KEY: self.handle_prompt_private_key,
            Action.PROMPT_MNEMONIC: self.handle_prompt_mnemonic,
            Action.IMPORT_PRIVATE_KEY: self.handle_import_private_key,
            Action.IMPORT_MNEMONIC: self.handle_import_mnemonic,
            Action.MY_WALLET: self.handle_my_wallet,
            Action.SHOW_PRIVATE_KEY: self.handle_show_private_key,
            Action.DELETE_WALLET: self.handle_delete_wallet,
            Action.BALANCE: self.handle_balance,
            Action.BEGIN_BUY: self.handle_begin_buy,
            Action.BEGIN_SELL: self.handle_begin_sell,
            Action.SHOW_TOKEN: self.handle_show_token,
            Action.BUY_TOKEN_ADDRESS: self.handle_buy_token_address,
            Action.SELL_TOKEN_ADDRESS: self.handle_sell_token_address,
            Action.INVALID_ADDRESS: self.handle_invalid_address,
            Action.OPEN_BUY: self.handle_open_buy,
            Action.OPEN_SELL: self.handle_open_sell,
            Action.REFRESH_TOKEN: self.handle_refresh_token,
            Action.BUY_PRESET: self.handle_buy_preset,
            Action.BUY_CUSTOM_PROMPT: self.handle_buy_custom_prompt,
            Action.BUY_CUSTOM_AMOUNT: self.handle_buy_custom_amount,
            Action.SELL_PERCENT: self.handle_sell_percent,
            Action.SELL_CUSTOM_PROMPT: self.handle_sell_custom_prompt,
            Action.SELL_CUSTOM_AMOUNT: self.handle_sell_custom_amount,
            Action.CONFIRM_BUY: self.handle_confirm_buy,
            Action.CONFIRM_SELL: self.handle_confirm_sell,
            Action.CANCEL: self.handle_cancel,
            Action.NO_WALLET: self.handle_no_wallet,
        }

    def is_executing(self, user_id: str) -> bool:
        return user_id in self._in_flight

    async def dispatch(self, event: Event):
        """Handle one inbound event for event.user_id."""
        if event.callback_id:
            await self.transport.answer_callback(event.callback_id)

        if event.button in CONFIRM_BUTTONS and self.is_executing(event.user_id):
            await self.transport.send_message(event.chat_id, ERROR_MESSAGES['TRANSACTION_IN_PROGRESS'])
            return

        session = self.sessions.get(event.user_id)
        step = decide(session, event, self.wallets.get(event.user_id) is not None)
        if step.action is Action.IGNORE:
            logger.debug(f"Ignoring event from {event.user_id} in state "
                         f"{session.state.value if session else 'IDLE'}: {event.button or event.command or 'text'}")
            return

        handler = self._handlers[step.action]
        try:
            await handler(event, step)
        except Exception as e:
            logger.exception(f"Error in {step.action.value} for user {event.user_id}: {e}")
            await self.transport.send_message(event.chat_id, messages.handler_error(e))

    # Helpers

    async def _send(self, event: Event, text: str, **kwargs) -> int:
        return await self.transport.send_message(event.chat_id, text, **kwargs)

    async def _reply(self, event: Event, text: str, message_id: Optional[int] = None, **kwargs):
        """Edit message_id when given, otherwise send a new message."""
        if message_id is None:
            await self.transport.send_message(event.chat_id, text, **kwargs)
        else:
            await self.transport.edit_message(event.chat_id, message_id, text, **kwargs)

    def _is_current(self, user_id: str, session: Optional[Session]) -> bool:
        """True if no other event replaced or cleared session while we awaited."""
        current = self.sessions.get(user_id)
        if current is not session:
            logger.debug(f"Session for {user_id} changed during lookup; discarding result")
            return False
        return True

    async def _estimate(self, token_address: str, amount: str, is_buy: bool) -> Optional[Decimal]:
        try:
            return await self.swap.quote(token_address, amount, is_buy)
        except TradingBotError as e:
            logger.warning(f"No quote for {token_address}: {e}")
            return None

    def _tx_url(self, tx_hash: str) -> str:
        return f"{self.settings.tx_explorer}{tx_hash}"

    # Commands and menus

    async def handle_start(self, event: Event, step: Step):
        await self._send(event, messages.WELCOME_TEXT, reply_markup=keyboards.get_main_keyboard(), parse_mode=MARKDOWN)

    async def handle_help(self, event: Event, step: Step):
        await self._send(event, messages.HELP_TEXT, parse_mode=MARKDOWN)

    async def handle_no_wallet(self, event: Event, step: Step):
        await self._send(event, ERROR_MESSAGES['WALLET_NOT_FOUND'])

    async def handle_cancel(self, event: Event, step: Step):
        self.sessions.clear(event.user_id)
        await self._send(event, 'Operation cancelled.')

    # Wallet management

    async def handle_wallet_menu(self, event: Event, step: Step):
        self.sessions.set(event.user_id, Session(State.WALLET_MENU))
        await self._send(event, '🔐 Please select an option:', reply_markup=keyboards.get_wallet_menu_keyboard())

    async def handle_create_wallet(self, event: Event, step: Step):
        wallet = self.wallet_provider.create_wallet(event.user_id)
        self.wallets.put(event.user_id, wallet)
        self.wallets.persist()
        self.sessions.clear(event.user_id)
        logger.info(f"Created wallet {wallet.address} for user {event.user_id}")

        await self._send(
            event,
            messages.wallet_created(wallet.address, wallet.private_key, wallet.mnemonic),
            parse_mode=MARKDOWN
        )

    async def handle_prompt_private_key(self, event: Event, step: Step):
        self.sessions.set(event.user_id, Session(State.IMPORT_PRIVATE_KEY))
        await self._send(event, 'Please enter your private key:', reply_markup=keyboards.get_cancel_keyboard())

    async def handle_prompt_mnemonic(self, event: Event, step: Step):
        self.sessions.set(event.user_id, Session(State.IMPORT_MNEMONIC))
        await self._send(event, 'Please enter your mnemonic phrase:', reply_markup=keyboards.get_cancel_keyboard())

    async def _delete_secret_message(self, event: Event):
        # The user's message holds key material; remove it from the chat
        if event.message_id is not None:
            await self.transport.delete_message(event.chat_id, event.message_id)

    async def _store_imported(self, event: Event, wallet):
        self.wallets.put(event.user_id, wallet)
        self.wallets.persist()
        self.sessions.clear(event.user_id)
        logger.info(f"Imported wallet {wallet.address} for user {event.user_id}")
        await self._send(event, messages.wallet_imported(wallet.address), parse_mode=MARKDOWN)

    async def handle_import_private_key(self, event: Event, step: Step):
        await self._delete_secret_message(event)
        try:
            wallet = self.wallet_provider.import_from_key(event.user_id, step.argument)
        except WalletError:
            await self._send(event, ERROR_MESSAGES['INVALID_PRIVATE_KEY'], reply_markup=keyboards.get_cancel_keyboard())
            return
        await self._store_imported(event, wallet)

    async def handle_import_mnemonic(self, event: Event, step: Step):
        await self._delete_secret_message(event)
        try:
            wallet = self.wallet_provider.import_from_mnemonic(event.user_id, step.argument)
        except WalletError:
            await self._send(event, ERROR_MESSAGES['INVALID_MNEMONIC'], reply_markup=keyboards.get_cancel_keyboard())
            return
        await self._store_imported(event, wallet)

    async def handle_my_wallet(self, event: Event, step: Step):
        wallet = self.wallets.get(event.user_id)
        loading_id = await self._send(event, 'Fetching wallet information...')

        try:
            mon_balance = await self.wallet_provider.get_native_balance(wallet.address)
        except WalletError as e:
            await self._reply(event, f"Error fetching wallet information: {e}", loading_id)
            return

        await self._reply(
            event,
            messages.my_wallet(wallet.address, mon_balance),
            loading_id,
            reply_markup=keyboards.get_my_wallet_keyboard(),
            parse_mode=MARKDOWN
        )

    async def handle_show_private_key(self, event: Event, step: Step):
        wallet = self.wallets.get(event.user_id)
        await self._send(event, messages.private_key(wallet.private_key), parse_mode=MARKDOWN)

    async def handle_delete_wallet(self, event: Event, step: Step):
        self.wallets.delete(event.user_id)
        self.wallets.persist()
        self.sessions.clear(event.user_id)
        logger.info(f"Deleted wallet for user {event.user_id}")
        await self._send(event, '✅ Your wallet has been deleted from this bot.')

    async def handle_balance(self, event: Event, step: Step):
        wallet = self.wallets.get(event.user_id)
        loading_id = await self._send(event, 'Fetching balance information...')

        try:
            mon_balance = await self.wallet_provider.get_native_balance(wallet.address)
        except WalletError as e:
            await self._reply(event, f"Error fetching balance: {e}", loading_id)
            return

        tokens = await self.explorer.get_wallet_tokens(wallet.address)
        await self._reply(event, messages.balance(wallet.address, mon_balance, tokens), loading_id, parse_mode=MARKDOWN)

    # Token lookup

    async def handle_show_token(self, event: Event, step: Step):
        """Read-only token overview with buy/sell buttons; supersedes any stale flow."""
        token_address = step.argument
        wallet = self.wallets.get(event.user_id)
        self.sessions.clear(event.user_id)

        loading_id = await self._send(event, 'Fetching token information...')
        try:
            token_info = await self.swap.get_token_info(token_address)
            details = await self.explorer.get_token_details(token_address)
            token_balance = await self.wallet_provider.get_token_balance(wallet.address, token_address)
            mon_balance = await self.wallet_provider.get_native_balance(wallet.address)
        except TradingBotError as e:
            await self._reply(event, messages.lookup_failed(e), loading_id)
            return

        await self._reply(
            event,
            messages.token_overview(token_info, details, token_balance, mon_balance),
            loading_id,
            reply_markup=keyboards.get_token_actions_keyboard(token_address),
            parse_mode=MARKDOWN
        )

    async def handle_refresh_token(self, event: Event, step: Step):
        token_address = step.argument
        wallet = self.wallets.get(event.user_id)

        loading_id = await self._send(event, 'Refreshing token information...')
        try:
            token_info = await self.swap.get_token_info(token_address)
            token_balance = await self.wallet_provider.get_token_balance(wallet.address, token_address)
            details = await self.explorer.get_token_details(token_address)
        except TradingBotError as e:
            await self._reply(event, f"Error refreshing token information: {e}", loading_id)
            return

        await self.transport.delete_message(event.chat_id, loading_id)
        await self._send(
            event,
            messages.token_details(token_info, details, token_balance),
            reply_markup=keyboards.get_token_details_keyboard(token_address),
            parse_mode=MARKDOWN
        )

    async def handle_invalid_address(self, event: Event, step: Step):
        await self._send(event, ERROR_MESSAGES['INVALID_ADDRESS'], reply_markup=keyboards.get_cancel_keyboard())

    # Buy flow

    async def handle_begin_buy(self, event: Event, step: Step):
        wallet = self.wallets.get(event.user_id)
        try:
            mon_balance = await self.wallet_provider.get_native_balance(wallet.address)
        except WalletError as e:
            await self._send(event, f"Error fetching balance: {e}")
            return

        if mon_balance <= 0:
            await self._send(event, messages.insufficient_balance(
                ERROR_MESSAGES['INSUFFICIENT_BALANCE'], mon_balance, 'MON'))
            return

        self.sessions.set(event.user_id, Session(State.BUY_TOKEN))
        await self._send(event, messages.buy_prompt(mon_balance),
                         reply_markup=keyboards.get_cancel_keyboard(), parse_mode=MARKDOWN)

    async def _open_buy(self, event: Event, token_address: str, session: Optional[Session],
                        message_id: Optional[int] = None):
        try:
            token_info = await self.swap.get_token_info(token_address)
        except SwapError as e:
            await self._reply(event, messages.lookup_failed(e), message_id)
            return
        if not self._is_current(event.user_id, session):
            return

        self.sessions.set(event.user_id, Session(State.BUY_AMOUNT, token_address=token_address, token_info=token_info))
        await self._reply(
            event,
            messages.buy_amount_prompt(token_info),
            message_id,
            reply_markup=keyboards.get_buy_amount_keyboard(self.settings.buy_amounts),
            parse_mode=MARKDOWN
        )

    async def handle_buy_token_address(self, event: Event, step: Step):
        session = self.sessions.get(event.user_id)
        loading_id = await self._send(event, 'Fetching token information...')
        await self._open_buy(event, step.argument, session, loading_id)

    async def handle_open_buy(self, event: Event, step: Step):
        await self._open_buy(event, step.argument, self.sessions.get(event.user_id))

    async def _stage_buy(self, event: Event, session: Session, amount: str):
        session.state = State.BUY_AMOUNT
        session.pending_amount = amount
        self.sessions.set(event.user_id, session)

        estimate = await self._estimate(session.token_address, amount, is_buy=True)
        await self._send(
            event,
            messages.confirm_buy(session.token_info, amount, estimate),
            reply_markup=keyboards.get_confirm_keyboard('buy'),
            parse_mode=MARKDOWN
        )

    async def handle_buy_preset(self, event: Event, step: Step):
        # Only amounts offered on the keyboard
        if Decimal(step.argument) not in {Decimal(amount) for amount in self.settings.buy_amounts}:
            logger.warning(f"Ignoring unoffered buy amount {step.argument!r} from user {event.user_id}")
            return
        await self._stage_buy(event, self.sessions.get(event.user_id), step.argument)

    async def handle_buy_custom_prompt(self, event: Event, step: Step):
        session = self.sessions.get(event.user_id)
        session.state = State.BUY_CUSTOM_AMOUNT
        session.pending_amount = None
        self.sessions.set(event.user_id, session)
        await self._send(event, 'Please enter the amount of MON you want to spend:',
                         reply_markup=keyboards.get_cancel_keyboard())

    async def handle_buy_custom_amount(self, event: Event, step: Step):
        try:
            amount = parse_amount(step.argument)
        except InvalidAmountError:
            await self._send(event, ERROR_MESSAGES['INVALID_AMOUNT'])
            return

        session = self.sessions.get(event.user_id)
        wallet = self.wallets.get(event.user_id)
        try:
            mon_balance = await self.wallet_provider.get_native_balance(wallet.address)
        except WalletError as e:
            await self._send(event, f"Error fetching balance: {e}")
            return
        if not self._is_current(event.user_id, session):
            return

        if mon_balance < amount:
            await self._send(event, messages.insufficient_balance(
                ERROR_MESSAGES['INSUFFICIENT_BALANCE'], mon_balance, 'MON'))
            return

        await self._stage_buy(event, session, format_amount(amount))

    async def handle_confirm_buy(self, event: Event, step: Step):
        session = self.sessions.get(event.user_id)
        wallet = self.wallets.get(event.user_id)
        token_info = session.token_info
        amount = session.pending_amount

        # The staged amount is consumed whatever the outcome
        self.sessions.clear(event.user_id)
        self._in_flight.add(event.user_id)
        try:
            processing_id = await self._send(event, messages.buy_processing(token_info, amount), parse_mode=MARKDOWN)
            try:
                tx_hash = await self.swap.execute_buy(wallet.private_key, session.token_address, amount)
            except Exception as e:
                logger.error(f"Buy failed for user {event.user_id}: {e}")
                await self._reply(event, messages.transaction_failed(e), processing_id)
                return

            self.wallets.log_transaction(event.user_id, tx_hash, 'buy', amount, session.token_address, 'confirmed')
            await self._reply(
                event,
                messages.buy_success(token_info, amount, self._tx_url(tx_hash)),
                processing_id,
                parse_mode=MARKDOWN,
                disable_web_page_preview=True
            )
        finally:
            self._in_flight.discard(event.user_id)

        await self._send_position_details(event, wallet.address, token_info)

    async def _send_position_details(self, event: Event, address: str, token_info):
        """Follow-up after a buy: the new token balance with refresh/sell buttons."""
        try:
            token_balance = await self.wallet_provider.get_token_balance(address, token_info.address)
            details = await self.explorer.get_token_details(token_info.address)
        except TradingBotError as e:
            logger.warning(f"Could not send token details to {event.user_id}: {e}")
            return

        await self._send(
            event,
            messages.token_details(token_info, details, token_balance),
            reply_markup=keyboards.get_token_details_keyboard(token_info.address),
            parse_mode=MARKDOWN
        )

    # Sell flow

    async def handle_begin_sell(self, event: Event, step: Step):
        self.sessions.set(event.user_id, Session(State.SELL_TOKEN))
        await self._send(event, 'Please enter the contract address of the token you want to sell:',
                         reply_markup=keyboards.get_cancel_keyboard())

    async def _open_sell(self, event: Event, token_address: str, session: Optional[Session],
                         message_id: Optional[int] = None):
        wallet = self.wallets.get(event.user_id)
        try:
            token_info = await self.swap.get_token_info(token_address)
            token_balance = await self.wallet_provider.get_token_balance(wallet.address, token_address)
        except TradingBotError as e:
            await self._reply(event, messages.lookup_failed(e), message_id)
            return
        if not self._is_current(event.user_id, session):
            return

        if token_balance <= 0:
            await self._reply(event, messages.nothing_to_sell(token_info), message_id, parse_mode=MARKDOWN)
            return

        self.sessions.set(event.user_id, Session(
            State.SELL_AMOUNT,
            token_address=token_address,
            token_info=token_info,
            token_balance=token_balance,
        ))
        await self._reply(
            event,
            messages.sell_amount_prompt(token_info, token_balance),
            message_id,
            reply_markup=keyboards.get_sell_amount_keyboard(),
            parse_mode=MARKDOWN
        )

    async def handle_sell_token_address(self, event: Event, step: Step):
        session = self.sessions.get(event.user_id)
        loading_id = await self._send(event, 'Fetching token information...')
        await self._open_sell(event, step.argument, session, loading_id)

    async def handle_open_sell(self, event: Event, step: Step):
        await self._open_sell(event, step.argument, self.sessions.get(event.user_id))

    async def _stage_sell(self, event: Event, session: Session, amount: str, percentage=None):
        session.state = State.SELL_AMOUNT
        session.pending_amount = amount
        self.sessions.set(event.user_id, session)

        estimate = await self._estimate(session.token_address, amount, is_buy=False)
        await self._send(
            event,
            messages.confirm_sell(session.token_info, amount, percentage, estimate),
            reply_markup=keyboards.get_confirm_keyboard('sell'),
            parse_mode=MARKDOWN
        )

    async def handle_sell_percent(self, event: Event, step: Step):
        session = self.sessions.get(event.user_id)
        percentage = int(step.argument)
        amount = sell_percentage_amount(session.token_balance, percentage)
        if amount <= 0:
            await self._send(event, ERROR_MESSAGES['INVALID_AMOUNT'])
            return
        await self._stage_sell(event, session, format_amount(amount), percentage)

    async def handle_sell_custom_prompt(self, event: Event, step: Step):
        session = self.sessions.get(event.user_id)
        session.state = State.SELL_CUSTOM_AMOUNT
        session.pending_amount = None
        self.sessions.set(event.user_id, session)
        max_amount = format_amount(session.token_balance)
        await self._send(
            event,
            f"Please enter the amount of {session.token_info.symbol} you want to sell (max: {max_amount}):",
            reply_markup=keyboards.get_cancel_keyboard()
        )

    async def handle_sell_custom_amount(self, event: Event, step: Step):
        try:
            amount = parse_amount(step.argument)
        except InvalidAmountError:
            await self._send(event, ERROR_MESSAGES['INVALID_AMOUNT'])
            return

        session = self.sessions.get(event.user_id)
        # Bounded by the balance captured when the sell flow began
        if amount > session.token_balance:
            await self._send(event, messages.insufficient_balance(
                ERROR_MESSAGES['INSUFFICIENT_BALANCE'], session.token_balance, session.token_info.symbol))
            return

        await self._stage_sell(event, session, format_amount(amount))

    async def handle_confirm_sell(self, event: Event, step: Step):
        session = self.sessions.get(event.user_id)
        wallet = self.wallets.get(event.user_id)
        token_info = session.token_info
        amount = session.pending_amount

        self.sessions.clear(event.user_id)
        self._in_flight.add(event.user_id)
        try:
            processing_id = await self._send(event, messages.sell_processing(token_info, amount), parse_mode=MARKDOWN)
            try:
                tx_hash = await self.swap.execute_sell(wallet.private_key, session.token_address, amount)
            except Exception as e:
                logger.error(f"Sell failed for user {event.user_id}: {e}")
                await self._reply(event, messages.transaction_failed(e), processing_id)
                return

            self.wallets.log_transaction(event.user_id, tx_hash, 'sell', amount, session.token_address, 'confirmed')
            await self._reply(
                event,
                messages.sell_success(token_info, amount, self._tx_url(tx_hash)),
                processing_id,
                parse_mode=MARKDOWN,
                disable_web_page_preview=True
            )
        finally:
            self._in_flight.discard(event.user_id)
