"""
Collateral guard for the trading sub-account.

Free collateral is read from the spot position of the collateral market as
``cumulative_deposits - scaled_balance``, both normalized by the market's
precision. A missing position counts as zero.

The guard requires ``order_size * collateral_multiplier`` of free collateral.
When short, it deposits the fallback amount once, waits for settlement and
re-reads once; there is never a second deposit in a run.

Examples:
    >>> from decimal import Decimal
    >>> required_collateral(Decimal("0.1"))
    Decimal('0.2')
    >>> free_collateral(None, 9)
    Decimal('0')
"""

from decimal import Decimal
from typing import Optional

from .errors import (
    CollateralDepositFailed,
    ExchangeError,
    InsufficientCollateral,
    InsufficientCollateralAtSubmission,
)
from .exchange import ExchangeClient, SpotPosition, SubAccountHandle
from .logging_setup import logger
from .markets import get_spot_market
from .timing import AsyncioClock

DEFAULT_COLLATERAL_MULTIPLIER = Decimal("2")
DEFAULT_SETTLEMENT_DELAY = 5.0


def free_collateral(position: Optional[SpotPosition], precision_exp: int) -> Decimal:
    """Free collateral in base units; never negative."""
    if position is None:
        return Decimal("0")
    scale = Decimal(10) ** precision_exp
    free = Decimal(position.cumulative_deposits) / scale - Decimal(position.scaled_balance) / scale
    return max(free, Decimal("0"))


def required_collateral(order_size: Decimal, multiplier: Decimal = DEFAULT_COLLATERAL_MULTIPLIER) -> Decimal:
    return order_size * multiplier


async def read_free_collateral(
    client: ExchangeClient,
    sub_account: SubAccountHandle,
    *,
    market_index: int,
    network: str,
) -> Decimal:
    precision = get_spot_market(network, market_index).precision_exp
    position = await client.get_position(market_index, sub_account.sub_account_index)
    return free_collateral(position, precision)


async def ensure_collateral(
    client: ExchangeClient,
    sub_account: SubAccountHandle,
    required_amount: Decimal,
    fallback_deposit_amount: Decimal,
    *,
    market_index: int,
    network: str,
    clock=None,
    settlement_delay: float = DEFAULT_SETTLEMENT_DELAY,
) -> Decimal:
    """Make sure the sub-account holds ``required_amount`` of free collateral.

    Args:
        client: Client owning the sub-account (deposits need the owner key)
        sub_account: Target sub-account
        required_amount: Free collateral needed, already multiplied
        fallback_deposit_amount: Amount deposited when short
        market_index: Collateral spot market
        network: Network for the market registry
        clock: Clock used for the settlement wait
        settlement_delay: Seconds to wait after the deposit

    Returns:
        The free collateral observed last

    Raises:
        CollateralDepositFailed: The deposit itself was rejected
        InsufficientCollateral: Still short after the single deposit
    """
    clock = clock or AsyncioClock()
    logger.info("Checking trading account collateral")
    balance = await read_free_collateral(client, sub_account, market_index=market_index, network=network)
    logger.info(f"Free collateral | market_index={market_index} free={balance} required={required_amount}")
    if balance >= required_amount:
        logger.info("Sufficient collateral in trading account")
        return balance

    logger.warning(
        f"Insufficient collateral, depositing | free={balance} required={required_amount} "
        f"deposit={fallback_deposit_amount}"
    )
    try:
        token_account = await client.get_associated_token_account(market_index)
        tx = await client.deposit(
            fallback_deposit_amount,
            market_index,
            token_account,
            sub_account_index=sub_account.sub_account_index,
        )
    except ExchangeError as e:
        raise CollateralDepositFailed(
            f"Deposit of {fallback_deposit_amount} to market {market_index} failed", cause=e
        ) from e
    logger.info(f"Deposit successful | tx={tx} amount={fallback_deposit_amount}")

    logger.info(f"Waiting for deposit confirmation | seconds={settlement_delay}")
    await clock.sleep(settlement_delay)

    balance = await read_free_collateral(client, sub_account, market_index=market_index, network=network)
    logger.info(f"Free collateral after deposit | free={balance} required={required_amount}")
    if balance < required_amount:
        raise InsufficientCollateral(
            f"Still insufficient collateral after deposit: free={balance} required={required_amount}"
        )
    return balance


async def verify_collateral(
    client: ExchangeClient,
    sub_account: SubAccountHandle,
    required_amount: Decimal,
    *,
    market_index: int,
    network: str,
) -> Decimal:
    """Same rule as ``ensure_collateral`` without remediation."""
    balance = await read_free_collateral(client, sub_account, market_index=market_index, network=network)
    if balance < required_amount:
        raise InsufficientCollateralAtSubmission(
            f"Free collateral dropped before submission: free={balance} required={required_amount}"
        )
    return balance
