"""Trade executor: build the market order, submit it once, classify failures.

Nothing here retries. A resubmission after a simulation failure could
duplicate intent, so another attempt needs a new run.
"""
from .collateral import required_collateral, verify_collateral
from .config import PolicyConfig, TradingConfig
from .errors import (
    ExchangeError,
    ExchangeErrorKind,
    OrderTooSmall,
    SimulationFailure,
    SubmissionFailure,
    WorkflowError,
)
from .exchange import (
    ExchangeClient,
    OrderConfirmation,
    OrderRequest,
    OrderType,
    PositionDirection,
    SubAccountHandle,
)
from .logging_setup import logger
from .markets import get_perp_market

ORDER_TOO_SMALL_MARKERS = ("OrderAmountTooSmall", "order amount too small")


def build_order(config: TradingConfig, market_index: int) -> OrderRequest:
    return OrderRequest(
        order_type=OrderType.MARKET,
        market_index=market_index,
        direction=PositionDirection.LONG,
        base_asset_amount=config.order_size,
        price=config.price,
    )


def classify_submission_error(error: ExchangeError) -> WorkflowError:
    """Map an exchange failure on submission to the run's error taxonomy."""
    if error.kind is ExchangeErrorKind.SIMULATION:
        lowered = [line.lower() for line in error.logs]
        if any(marker.lower() in line for line in lowered for marker in ORDER_TOO_SMALL_MARKERS):
            return OrderTooSmall("Order size too small", cause=error, logs=error.logs)
        return SimulationFailure("Transaction failed in simulation", cause=error, logs=error.logs)
    return SubmissionFailure(f"Order submission failed ({error.kind.value})", cause=error)


async def place_trade(
    client: ExchangeClient,
    sub_account: SubAccountHandle,
    config: TradingConfig,
    policy: PolicyConfig,
) -> OrderConfirmation:
    """Submit the configured market order on behalf of ``sub_account``.

    Raises:
        UnknownMarket: ``config.base_asset_symbol`` has no perp market
        InsufficientCollateralAtSubmission: Collateral drifted below the requirement
        SimulationFailure / OrderTooSmall: Rejected during pre-flight simulation
        SubmissionFailure: Any other submission error
    """
    market = get_perp_market(config.network, config.base_asset_symbol)
    logger.info(f"Trading {market.base_asset_symbol} | market_index={market.market_index}")

    logger.info("Checking trading balance before submission")
    await verify_collateral(
        client,
        sub_account,
        required_collateral(config.order_size, policy.collateral_multiplier),
        market_index=config.market_index,
        network=config.network,
    )

    order = build_order(config, market.market_index)
    logger.info(f"Order params | {order.to_dict()}")

    try:
        confirmation = await client.submit_order(order, sub_account.sub_account_index)
    except ExchangeError as e:
        if e.kind is ExchangeErrorKind.SIMULATION:
            logger.error(f"Transaction failed | simulation_logs={e.logs}")
        raise classify_submission_error(e) from e

    logger.info(f"Order created | tx={confirmation.tx_signature}")
    return confirmation
