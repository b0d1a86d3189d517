from decimal import Decimal

import pytest

from drift_trader.delegate import create_delegate_client, print_delegate_secret, setup_delegate
from drift_trader.errors import (
    DelegateClientFailed,
    DelegateRegistrationFailed,
    ExchangeError,
    ExchangeErrorKind,
)
from drift_trader.executor import build_order
from drift_trader.config import TradingConfig
from drift_trader.simulated import SimulatedExchange
from drift_trader.wallet import generate_keypair


class RevealSpy:
    def __init__(self):
        self.revealed = []

    def __call__(self, identity):
        self.revealed.append(identity)


async def owner_setup():
    exchange = SimulatedExchange()
    main = generate_keypair()
    exchange.seed_account(main.address, 0, collateral={1: Decimal("0.5")})
    client = await exchange.open_client(main)
    await client.connect()
    return exchange, main, client


@pytest.mark.asyncio
async def test_new_delegate_is_registered_and_revealed_once():
    exchange, main, client = await owner_setup()
    spy = RevealSpy()

    delegate = await setup_delegate(client, 0, main_wallet=main, reveal_secret=spy)

    assert delegate != main
    assert spy.revealed == [delegate]
    registrations = exchange.calls_to("register_delegate")
    assert registrations == [{"delegate": delegate.address, "sub_account_index": 0}]
    assert exchange.accounts[(main.address, 0)].delegate == delegate.address


@pytest.mark.asyncio
async def test_each_run_generates_an_unrelated_delegate():
    _, main, client = await owner_setup()
    spy = RevealSpy()

    first = await setup_delegate(client, 0, main_wallet=main, reveal_secret=spy)
    second = await setup_delegate(client, 0, main_wallet=main, reveal_secret=spy)

    assert first != second
    assert main not in (first, second)


@pytest.mark.asyncio
async def test_registration_rejected():
    exchange, main, client = await owner_setup()
    exchange.fail("register_delegate", ExchangeError(ExchangeErrorKind.REJECTED, "Unauthorized"))

    with pytest.raises(DelegateRegistrationFailed):
        await setup_delegate(client, 0, main_wallet=main, reveal_secret=RevealSpy())

    assert exchange.accounts[(main.address, 0)].delegate is None


@pytest.mark.asyncio
async def test_supplied_delegate_already_registered_is_reused():
    exchange, main, client = await owner_setup()
    stored = generate_keypair()
    exchange.accounts[(main.address, 0)].delegate = stored.address
    spy = RevealSpy()

    delegate = await setup_delegate(client, 0, main_wallet=main, existing=stored, reveal_secret=spy)

    assert delegate == stored
    assert spy.revealed == []
    assert exchange.calls_to("register_delegate") == []


@pytest.mark.asyncio
async def test_supplied_delegate_not_yet_registered():
    exchange, main, client = await owner_setup()
    stored = generate_keypair()
    spy = RevealSpy()

    await setup_delegate(client, 0, main_wallet=main, existing=stored, reveal_secret=spy)

    assert spy.revealed == []
    assert exchange.accounts[(main.address, 0)].delegate == stored.address


@pytest.mark.asyncio
async def test_main_wallet_cannot_be_its_own_delegate():
    exchange, main, client = await owner_setup()

    with pytest.raises(DelegateRegistrationFailed):
        await setup_delegate(client, 0, main_wallet=main, existing=main, reveal_secret=RevealSpy())
    assert exchange.mutating_calls == []


@pytest.mark.asyncio
async def test_delegate_client_trades_for_main_authority():
    exchange, main, client = await owner_setup()
    delegate = await setup_delegate(client, 0, main_wallet=main, reveal_secret=RevealSpy())

    delegate_client = await create_delegate_client(exchange, delegate, main)

    assert delegate_client.is_delegate
    assert delegate_client.address == delegate.address
    assert delegate_client.authority == main.address
    confirmation = await delegate_client.submit_order(build_order(TradingConfig(), 0), 0)
    assert exchange.orders == [(delegate.address, confirmation)]


@pytest.mark.asyncio
async def test_delegate_client_cannot_deposit():
    exchange, main, client = await owner_setup()
    delegate = await setup_delegate(client, 0, main_wallet=main, reveal_secret=RevealSpy())
    delegate_client = await create_delegate_client(exchange, delegate, main)

    with pytest.raises(ExchangeError) as exc_info:
        await delegate_client.deposit(Decimal("1"), 1, "ata", 0)
    assert exc_info.value.kind is ExchangeErrorKind.REJECTED


@pytest.mark.asyncio
async def test_delegate_client_subscription_failure():
    exchange, main, client = await owner_setup()
    delegate = generate_keypair()
    exchange.fail("connect", ExchangeError(ExchangeErrorKind.TRANSPORT, "websocket closed"))

    with pytest.raises(DelegateClientFailed):
        await create_delegate_client(exchange, delegate, main)


def test_print_delegate_secret_goes_to_stdout(capsys):
    identity = generate_keypair()

    print_delegate_secret(identity)

    captured = capsys.readouterr()
    assert identity.address in captured.out
    assert identity.secret_hex in captured.out
    assert identity.secret_hex not in captured.err
