import json
from decimal import Decimal

import pytest

from drift_trader.config import BotConfig, PolicyConfig, TradingConfig
from drift_trader.errors import ErrorKind, ExchangeError, ExchangeErrorKind
from drift_trader.secrets import WalletSecrets
from drift_trader.simulated import SimulatedExchange
from drift_trader.timing import InstantClock
from drift_trader.wallet import generate_keypair
from drift_trader.workflow import (
    InvalidTransition,
    TradeWorkflow,
    WorkflowState,
    WorkflowStateMachine,
)

S = WorkflowState

DIRECT_HISTORY = [
    S.INIT, S.WALLET_LOADED, S.CONNECTION_ESTABLISHED, S.ACCOUNT_READY,
    S.COLLATERAL_READY, S.ORDER_SUBMITTED, S.DONE,
]


class RevealSpy:
    def __init__(self):
        self.revealed = []

    def __call__(self, identity):
        self.revealed.append(identity)


def make_config(use_delegate=False, order_size="0.1", deposit_amount="0.5", **policy):
    return BotConfig(
        trading=TradingConfig(
            order_size=Decimal(order_size),
            deposit_amount=Decimal(deposit_amount),
            use_delegate=use_delegate,
        ),
        policy=PolicyConfig(**policy),
    )


def make_workflow(config, exchange=None, main=None, delegate_secret=None):
    exchange = exchange or SimulatedExchange()
    main = main or generate_keypair()
    exchange.fund_wallet(main.address, Decimal("2"))
    spy = RevealSpy()
    workflow = TradeWorkflow(
        config,
        exchange,
        WalletSecrets(main_secret=main.secret_hex, delegate_secret=delegate_secret),
        clock=InstantClock(),
        reveal_secret=spy,
    )
    return workflow, exchange, main, spy


# --- state machine ---

def test_state_machine_direct_path():
    machine = WorkflowStateMachine(use_delegate=False)
    for state in DIRECT_HISTORY[1:]:
        machine.advance(state)
    assert machine.history == DIRECT_HISTORY
    assert machine.is_terminal


def test_state_machine_rejects_skipping_states():
    machine = WorkflowStateMachine()
    with pytest.raises(InvalidTransition):
        machine.advance(S.ACCOUNT_READY)


def test_state_machine_rejects_going_back():
    machine = WorkflowStateMachine()
    machine.advance(S.WALLET_LOADED)
    with pytest.raises(InvalidTransition):
        machine.advance(S.INIT)


def test_delegate_state_required_in_delegate_mode():
    machine = WorkflowStateMachine(use_delegate=True)
    for state in (S.WALLET_LOADED, S.CONNECTION_ESTABLISHED, S.ACCOUNT_READY, S.COLLATERAL_READY):
        machine.advance(state)
    with pytest.raises(InvalidTransition):
        machine.advance(S.ORDER_SUBMITTED)
    machine.advance(S.DELEGATE_READY)
    machine.advance(S.ORDER_SUBMITTED)


def test_delegate_state_forbidden_in_direct_mode():
    machine = WorkflowStateMachine(use_delegate=False)
    for state in (S.WALLET_LOADED, S.CONNECTION_ESTABLISHED, S.ACCOUNT_READY, S.COLLATERAL_READY):
        machine.advance(state)
    with pytest.raises(InvalidTransition):
        machine.advance(S.DELEGATE_READY)


def test_cannot_fail_after_done():
    machine = WorkflowStateMachine()
    for state in DIRECT_HISTORY[1:]:
        machine.advance(state)
    with pytest.raises(InvalidTransition):
        machine.fail()


# --- end-to-end runs ---

@pytest.mark.asyncio
async def test_fresh_wallet_creates_account_deposits_and_trades():
    workflow, exchange, main, _ = make_workflow(make_config())

    result = await workflow.run()

    assert result.ok
    assert result.exit_code == 0
    assert result.history == DIRECT_HISTORY
    assert len(exchange.calls_to("create_sub_account")) == 1
    assert len(exchange.calls_to("deposit")) == 1
    assert exchange.calls_to("deposit")[0]["amount"] == Decimal("0.5")
    assert len(exchange.orders) == 1
    signer, confirmation = exchange.orders[0]
    assert signer == main.address
    assert result.confirmation == confirmation
    assert workflow.clock.sleeps == [5.0, 5.0]


@pytest.mark.asyncio
async def test_funded_account_trades_without_deposit():
    exchange = SimulatedExchange()
    main = generate_keypair()
    exchange.seed_account(main.address, 0, collateral={1: Decimal("0.5")})
    workflow, _, _, _ = make_workflow(make_config(), exchange=exchange, main=main)

    result = await workflow.run()

    assert result.ok
    assert exchange.calls_to("create_sub_account") == []
    assert exchange.calls_to("deposit") == []
    assert len(exchange.calls_to("submit_order")) == 1


@pytest.mark.asyncio
async def test_unsettled_deposit_fails_without_order():
    exchange = SimulatedExchange(settle_deposits=False)
    main = generate_keypair()
    exchange.seed_account(main.address, 0, collateral={1: Decimal("0.05")})
    workflow, _, _, _ = make_workflow(make_config(), exchange=exchange, main=main)

    result = await workflow.run()

    assert not result.ok
    assert result.exit_code == 1
    assert result.state is S.FAILED
    assert result.error_kind is ErrorKind.INSUFFICIENT_COLLATERAL
    assert result.last_state is S.ACCOUNT_READY
    assert exchange.calls_to("submit_order") == []


@pytest.mark.asyncio
async def test_rejected_delegate_registration_places_no_order():
    exchange = SimulatedExchange()
    main = generate_keypair()
    exchange.seed_account(main.address, 0, collateral={1: Decimal("0.5")})
    exchange.fail("register_delegate", ExchangeError(ExchangeErrorKind.REJECTED, "Unauthorized"))
    workflow, _, _, _ = make_workflow(make_config(use_delegate=True), exchange=exchange, main=main)

    result = await workflow.run()

    assert result.error_kind is ErrorKind.DELEGATE_REGISTRATION_FAILED
    assert result.last_state is S.COLLATERAL_READY
    assert exchange.calls_to("submit_order") == []
    assert exchange.accounts[(main.address, 0)].delegate is None
    assert exchange.calls_to("deposit") == []


@pytest.mark.asyncio
async def test_order_too_small_surfaces_logs():
    exchange = SimulatedExchange()
    main = generate_keypair()
    exchange.seed_account(main.address, 0, collateral={1: Decimal("1")})
    logs = ["Program log: AnchorError occurred. Error Code: OrderAmountTooSmall."]
    exchange.fail(
        "submit_order",
        ExchangeError(ExchangeErrorKind.SIMULATION, "Transaction simulation failed", logs=logs),
    )
    workflow, _, _, _ = make_workflow(make_config(order_size="0.0001"), exchange=exchange, main=main)

    result = await workflow.run()

    assert result.error_kind is ErrorKind.ORDER_TOO_SMALL
    assert result.error.logs == logs
    assert result.last_state is S.COLLATERAL_READY
    assert len(exchange.calls_to("submit_order")) == 1


@pytest.mark.asyncio
async def test_delegate_mode_trades_with_delegate_key():
    exchange = SimulatedExchange()
    main = generate_keypair()
    exchange.seed_account(main.address, 0, collateral={1: Decimal("0.5")})
    workflow, _, _, spy = make_workflow(make_config(use_delegate=True), exchange=exchange, main=main)

    result = await workflow.run()

    assert result.ok
    assert S.DELEGATE_READY in result.history
    assert len(spy.revealed) == 1
    delegate = spy.revealed[0]
    assert delegate != main
    signer, _ = exchange.orders[0]
    assert signer == delegate.address
    assert exchange.accounts[(main.address, 0)].delegate == delegate.address


@pytest.mark.asyncio
async def test_stored_delegate_is_reused():
    exchange = SimulatedExchange()
    main = generate_keypair()
    stored = generate_keypair()
    exchange.seed_account(main.address, 0, collateral={1: Decimal("0.5")}, delegate=stored.address)
    workflow, _, _, spy = make_workflow(
        make_config(use_delegate=True), exchange=exchange, main=main, delegate_secret=stored.secret_hex
    )

    result = await workflow.run()

    assert result.ok
    assert spy.revealed == []
    assert exchange.calls_to("register_delegate") == []
    assert exchange.orders[0][0] == stored.address


@pytest.mark.asyncio
async def test_low_wallet_balance_stops_before_any_transaction():
    exchange = SimulatedExchange()
    workflow, _, main, _ = make_workflow(make_config(), exchange=exchange)
    exchange.fund_wallet(main.address, Decimal("0.05"))

    result = await workflow.run()

    assert result.error_kind is ErrorKind.INSUFFICIENT_WALLET_BALANCE
    assert result.last_state is S.WALLET_LOADED
    assert exchange.mutating_calls == []


@pytest.mark.asyncio
async def test_bad_secret_fails_wallet_load():
    exchange = SimulatedExchange()
    workflow = TradeWorkflow(
        make_config(), exchange, WalletSecrets(main_secret="not a key"), clock=InstantClock()
    )

    result = await workflow.run()

    assert result.error_kind is ErrorKind.WALLET_LOAD_FAILED
    assert result.last_state is S.INIT
    assert result.history == [S.INIT, S.FAILED]
    assert exchange.calls == []


@pytest.mark.asyncio
async def test_account_timeout_is_reported():
    exchange = SimulatedExchange(creation_lag_reads=5)
    workflow, _, _, _ = make_workflow(make_config(), exchange=exchange)

    result = await workflow.run()

    assert result.error_kind is ErrorKind.ACCOUNT_PROVISIONING_TIMEOUT
    assert result.last_state is S.CONNECTION_ESTABLISHED
    assert exchange.calls_to("deposit") == []


@pytest.mark.asyncio
async def test_unexpected_error_is_wrapped():
    class BrokenExchange(SimulatedExchange):
        async def get_wallet_balance(self, address):
            raise RuntimeError("boom")

    workflow, _, _, _ = make_workflow(make_config(), exchange=BrokenExchange())

    result = await workflow.run()

    assert result.error_kind is ErrorKind.UNEXPECTED
    assert isinstance(result.error.cause, RuntimeError)
    assert result.exit_code == 1


@pytest.mark.asyncio
async def test_clients_are_closed_after_run():
    exchange = SimulatedExchange()
    workflow, _, _, _ = make_workflow(make_config(use_delegate=True), exchange=exchange)

    await workflow.run()

    assert len(exchange.clients) == 2
    assert all(not client.connected for client in exchange.clients)


@pytest.mark.asyncio
async def test_json_array_private_key_loads_wallet():
    exchange = SimulatedExchange()
    main = generate_keypair()
    exchange.fund_wallet(main.address, Decimal("2"))
    exchange.seed_account(main.address, 0, collateral={1: Decimal("0.5")})
    workflow = TradeWorkflow(
        make_config(),
        exchange,
        WalletSecrets(main_secret=json.dumps(list(main.secret_key))),
        clock=InstantClock(),
    )

    result = await workflow.run()

    assert result.ok
    assert exchange.orders[0][0] == main.address
