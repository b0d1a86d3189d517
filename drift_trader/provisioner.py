"""Sub-account provisioning: find the trading sub-account or create it."""
from typing import Sequence

from .errors import AccountCreationRejected, AccountProvisioningTimeout, ExchangeError
from .exchange import ExchangeClient, SubAccountHandle
from .logging_setup import logger
from .timing import AsyncioClock

DEFAULT_POLL_DELAYS = (5.0, 3.0)


async def ensure_sub_account(
    client: ExchangeClient,
    sub_account_index: int,
    *,
    clock=None,
    poll_delays: Sequence[float] = DEFAULT_POLL_DELAYS,
) -> SubAccountHandle:
    """Return the sub-account handle, creating the sub-account when absent.

    An existing sub-account is returned without any mutating call, re-read
    on the ``poll_delays`` schedule when its first read is stale. Otherwise
    one creation transaction is sent and the sub-account is re-read after each
    delay in ``poll_delays``.

    Raises:
        AccountCreationRejected: The exchange refused the creation request
        AccountProvisioningTimeout: Still absent after the last poll
    """
    if sub_account_index < 0:
        raise ValueError(f"sub_account_index must be non-negative, got {sub_account_index}")
    clock = clock or AsyncioClock()

    if await client.has_sub_account(sub_account_index):
        handle = await client.get_sub_account(sub_account_index)
        if handle is None:
            # existing account behind a stale cache read: wait, never create
            logger.info(f"Sub-account exists but is not readable yet | index={sub_account_index}")
            handle = await _poll_sub_account(client, sub_account_index, clock, poll_delays)
        logger.info(f"Sub-account already exists | index={sub_account_index} address={handle.address}")
        return handle

    logger.info(f"Sub-account does not exist, creating | index={sub_account_index} authority={client.authority}")
    try:
        tx = await client.create_sub_account(sub_account_index)
    except ExchangeError as e:
        raise AccountCreationRejected(
            f"Exchange rejected creation of sub-account {sub_account_index}", cause=e
        ) from e
    logger.info(f"Sub-account creation sent | index={sub_account_index} tx={tx}")

    handle = await _poll_sub_account(client, sub_account_index, clock, poll_delays)
    logger.info(f"Sub-account created | index={sub_account_index} address={handle.address}")
    return handle


async def _poll_sub_account(
    client: ExchangeClient,
    sub_account_index: int,
    clock,
    poll_delays: Sequence[float],
) -> SubAccountHandle:
    """Re-read after each delay until the handle appears or the delays run out."""
    for attempt, delay in enumerate(poll_delays, start=1):
        await clock.sleep(delay)
        handle = await client.get_sub_account(sub_account_index)
        logger.info(
            f"Sub-account poll | attempt={attempt}/{len(poll_delays)} "
            f"status={'exists' if handle else 'still not found'}"
        )
        if handle is not None:
            return handle

    raise AccountProvisioningTimeout(
        f"Sub-account {sub_account_index} still not found after {len(poll_delays)} checks "
        f"({sum(poll_delays):g}s)"
    )
