"""
Workflow orchestrator for one bot run.

State Transitions:
    INIT → WALLET_LOADED → CONNECTION_ESTABLISHED → ACCOUNT_READY
         → COLLATERAL_READY → [DELEGATE_READY] → ORDER_SUBMITTED → DONE

    Any non-terminal state → FAILED

DELEGATE_READY is entered only in delegate mode. Transitions only move
forward, and a run is single-shot: another trade needs a new run from INIT.

The orchestrator never recovers from a failure. It logs the classified error
and returns a ``WorkflowResult``; turning that into a process exit code is
left to the caller.

Example:
    >>> workflow = TradeWorkflow(config, SimulatedExchange(), secrets, clock=InstantClock())
    >>> result = await workflow.run()
    >>> result.exit_code
    0
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Set

from .collateral import ensure_collateral, required_collateral
from .config import BotConfig
from .delegate import SecretSink, create_delegate_client, print_delegate_secret, setup_delegate
from .errors import (
    ErrorKind,
    InsufficientWalletBalance,
    UnexpectedFailure,
    WalletLoadFailed,
    WorkflowError,
)
from .exchange import ExchangeClient, ExchangeConnector, OrderConfirmation
from .executor import place_trade
from .logging_setup import logger
from .provisioner import ensure_sub_account
from .secrets import WalletSecrets
from .timing import AsyncioClock
from .wallet import WalletIdentity, load_keypair, load_main_keypair


class WorkflowState(Enum):
    INIT = auto()
    WALLET_LOADED = auto()
    CONNECTION_ESTABLISHED = auto()
    ACCOUNT_READY = auto()
    COLLATERAL_READY = auto()
    DELEGATE_READY = auto()
    ORDER_SUBMITTED = auto()
    DONE = auto()
    FAILED = auto()


FORWARD_TRANSITIONS: Dict[WorkflowState, Set[WorkflowState]] = {
    WorkflowState.INIT: {WorkflowState.WALLET_LOADED},
    WorkflowState.WALLET_LOADED: {WorkflowState.CONNECTION_ESTABLISHED},
    WorkflowState.CONNECTION_ESTABLISHED: {WorkflowState.ACCOUNT_READY},
    WorkflowState.ACCOUNT_READY: {WorkflowState.COLLATERAL_READY},
    WorkflowState.COLLATERAL_READY: {WorkflowState.DELEGATE_READY, WorkflowState.ORDER_SUBMITTED},
    WorkflowState.DELEGATE_READY: {WorkflowState.ORDER_SUBMITTED},
    WorkflowState.ORDER_SUBMITTED: {WorkflowState.DONE},
}

TERMINAL_STATES = frozenset({WorkflowState.DONE, WorkflowState.FAILED})


class InvalidTransition(RuntimeError):
    pass


class WorkflowStateMachine:
    """Forward-only state tracker for a run.

    Attributes:
        state: Current state
        history: Every state entered, starting with INIT
    """

    def __init__(self, use_delegate: bool = False) -> None:
        self.use_delegate = use_delegate
        self.state = WorkflowState.INIT
        self.history: List[WorkflowState] = [WorkflowState.INIT]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: WorkflowState) -> None:
        """Move forward to ``target``.

        Raises:
            InvalidTransition: If ``target`` is not a legal next state; the
                               delegate step is legal only in delegate mode
                               and mandatory there
        """
        allowed = FORWARD_TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise InvalidTransition(f"{self.state.name} -> {target.name} is not allowed")
        if self.state is WorkflowState.COLLATERAL_READY:
            expected = WorkflowState.DELEGATE_READY if self.use_delegate else WorkflowState.ORDER_SUBMITTED
            if target is not expected:
                raise InvalidTransition(
                    f"{self.state.name} -> {target.name} is not allowed with use_delegate={self.use_delegate}"
                )
        logger.info(f"Workflow state | {self.state.name} -> {target.name}")
        self.state = target
        self.history.append(target)

    def fail(self) -> None:
        if self.is_terminal:
            raise InvalidTransition(f"Cannot fail from terminal state {self.state.name}")
        logger.error(f"Workflow state | {self.state.name} -> FAILED")
        self.state = WorkflowState.FAILED
        self.history.append(WorkflowState.FAILED)


@dataclass(frozen=True)
class WorkflowResult:
    """Tagged outcome of a run.

    ``last_state`` is the last state reached before DONE or FAILED.
    """

    state: WorkflowState
    last_state: WorkflowState
    history: List[WorkflowState] = field(default_factory=list)
    error: Optional[WorkflowError] = None
    confirmation: Optional[OrderConfirmation] = None

    @property
    def ok(self) -> bool:
        return self.state is WorkflowState.DONE

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


class TradeWorkflow:
    """Runs provisioning, collateral, optional delegate setup and the order, in that order."""

    def __init__(
        self,
        config: BotConfig,
        connector: ExchangeConnector,
        secrets: WalletSecrets,
        *,
        clock=None,
        reveal_secret: SecretSink = print_delegate_secret,
    ):
        self.config = config
        self.connector = connector
        self.secrets = secrets
        self.clock = clock or AsyncioClock()
        self.reveal_secret = reveal_secret
        self.machine = WorkflowStateMachine(use_delegate=config.trading.use_delegate)
        self._clients: List[ExchangeClient] = []

    async def run(self) -> WorkflowResult:
        trading = self.config.trading
        logger.info("Starting drift trader")
        logger.info(
            f"Configuration | network={trading.network} market_index={trading.market_index} "
            f"symbol={trading.base_asset_symbol} order_size={trading.order_size} price={trading.price} "
            f"deposit_amount={trading.deposit_amount} use_delegate={trading.use_delegate} "
            f"delegate_sub_account_id={trading.delegate_sub_account_id}"
        )

        error: Optional[WorkflowError] = None
        confirmation: Optional[OrderConfirmation] = None
        try:
            confirmation = await self._execute()
        except WorkflowError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error in state {self.machine.state.name}")
            error = UnexpectedFailure(f"Unexpected error in state {self.machine.state.name}", cause=e)
        finally:
            await self._close_clients()

        last_state = self.machine.state
        if error is not None:
            self.machine.fail()
            logger.error(f"Bot failed | kind={error.kind.value} state={last_state.name} error={error}")
            if error.kind in (ErrorKind.SIMULATION_FAILURE, ErrorKind.ORDER_TOO_SMALL):
                for line in error.logs:
                    logger.error(f"Simulation log | {line}")
            if error.kind is ErrorKind.ORDER_TOO_SMALL:
                logger.warning("Order size too small; raise trading.order_size")
        else:
            self.machine.advance(WorkflowState.DONE)
            logger.info("Bot finished successfully")

        return WorkflowResult(
            state=self.machine.state,
            last_state=last_state,
            history=list(self.machine.history),
            error=error,
            confirmation=confirmation,
        )

    async def _execute(self) -> OrderConfirmation:
        trading = self.config.trading
        policy = self.config.policy

        main_wallet, stored_delegate = self._load_wallets()
        logger.info(f"Main wallet address | {main_wallet.address}")
        self.machine.advance(WorkflowState.WALLET_LOADED)

        balance = await self.connector.get_wallet_balance(main_wallet.address)
        logger.info(f"Wallet balance | {balance} SOL")
        if balance < policy.min_wallet_balance:
            raise InsufficientWalletBalance(
                f"Insufficient wallet balance: {balance} SOL, need at least {policy.min_wallet_balance} SOL"
            )
        main_client = await self.connector.open_client(main_wallet)
        self._clients.append(main_client)
        await main_client.connect()
        logger.info(f"Connected to Solana {trading.network}; main client subscribed")
        self.machine.advance(WorkflowState.CONNECTION_ESTABLISHED)

        sub_account = await ensure_sub_account(
            main_client,
            trading.sub_account_index,
            clock=self.clock,
            poll_delays=policy.account_poll_delays,
        )
        self.machine.advance(WorkflowState.ACCOUNT_READY)

        await ensure_collateral(
            main_client,
            sub_account,
            required_collateral(trading.order_size, policy.collateral_multiplier),
            trading.deposit_amount,
            market_index=trading.market_index,
            network=trading.network,
            clock=self.clock,
            settlement_delay=policy.settlement_delay_seconds,
        )
        self.machine.advance(WorkflowState.COLLATERAL_READY)

        trading_client = main_client
        if trading.use_delegate:
            logger.info("Delegate mode enabled")
            delegate = await setup_delegate(
                main_client,
                trading.delegate_sub_account_id,
                main_wallet=main_wallet,
                existing=stored_delegate,
                reveal_secret=self.reveal_secret,
            )
            trading_client = await create_delegate_client(self.connector, delegate, main_wallet)
            self._clients.append(trading_client)
            self.machine.advance(WorkflowState.DELEGATE_READY)
        else:
            logger.info("Direct trading mode (no delegate)")

        confirmation = await place_trade(trading_client, sub_account, trading, policy)
        self.machine.advance(WorkflowState.ORDER_SUBMITTED)
        return confirmation

    def _load_wallets(self):
        try:
            main_wallet = load_main_keypair(self.secrets.main_secret)
        except ValueError as e:
            raise WalletLoadFailed("Could not load main wallet keypair", cause=e) from e

        stored_delegate: Optional[WalletIdentity] = None
        if self.config.trading.use_delegate and self.secrets.delegate_secret:
            try:
                stored_delegate = load_keypair(self.secrets.delegate_secret)
            except ValueError as e:
                raise WalletLoadFailed("Could not load delegate keypair", cause=e) from e
        return main_wallet, stored_delegate

    async def _close_clients(self) -> None:
        for client in reversed(self._clients):
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Failed to close exchange client | address={client.address} error={e}")
        self._clients.clear()
