"""Delegate key management.

A delegate is a separate keypair allowed to place and cancel orders for the
main wallet's sub-account, without withdrawal or ownership rights. Fresh
delegates are generated locally, never derived from the main key. Their
secret is shown to the operator exactly once and stored nowhere else.
"""
import sys
from typing import Callable, Optional

from .errors import (
    DelegateClientFailed,
    DelegateRegistrationFailed,
    ExchangeError,
)
from .exchange import ExchangeClient, ExchangeConnector
from .logging_setup import logger
from .wallet import WalletIdentity, generate_keypair

SecretSink = Callable[[WalletIdentity], None]


def print_delegate_secret(identity: WalletIdentity) -> None:
    """Write the delegate secret to stdout, outside the log files."""
    print(f"Delegate account address: {identity.address}", file=sys.stdout)
    print(f"Delegate account secret: {identity.secret_hex}", file=sys.stdout)
    print("Store this secret now; it is not saved anywhere.", file=sys.stdout, flush=True)


async def setup_delegate(
    client: ExchangeClient,
    sub_account_index: int,
    *,
    main_wallet: WalletIdentity,
    existing: Optional[WalletIdentity] = None,
    reveal_secret: SecretSink = print_delegate_secret,
) -> WalletIdentity:
    """Register a delegate for the sub-account and return its identity.

    Args:
        client: Client signing with the main wallet
        sub_account_index: Sub-account the delegate may trade
        main_wallet: Owner identity; the delegate must differ from it
        existing: Delegate supplied out-of-band by an earlier run
        reveal_secret: Called once with a newly generated delegate

    Raises:
        DelegateRegistrationFailed: Registration rejected, or the delegate
                                    would be the main wallet itself
    """
    logger.info(f"Setting up delegate account | sub_account={sub_account_index}")
    if existing is not None:
        delegate = existing
        logger.info(f"Reusing supplied delegate | address={delegate.address}")
    else:
        delegate = generate_keypair()
        logger.info(f"Generated delegate keypair | address={delegate.address}")

    if delegate == main_wallet:
        raise DelegateRegistrationFailed("Delegate key must differ from the main wallet key")

    if existing is None:
        reveal_secret(delegate)
    else:
        current = await client.get_sub_account(sub_account_index)
        if current is not None and current.delegate == delegate.address:
            logger.info("Supplied delegate already registered; skipping update")
            return delegate

    try:
        tx = await client.register_delegate(delegate.address, sub_account_index)
    except ExchangeError as e:
        raise DelegateRegistrationFailed(
            f"Exchange rejected delegate {delegate.address} for sub-account {sub_account_index}", cause=e
        ) from e
    logger.info(f"Delegate account updated | address={delegate.address} tx={tx}")
    return delegate


async def create_delegate_client(
    connector: ExchangeConnector,
    delegate: WalletIdentity,
    main_wallet: WalletIdentity,
) -> ExchangeClient:
    """Open and subscribe a client signing as ``delegate`` for the main wallet."""
    logger.info(f"Creating delegate client | delegate={delegate.address} authority={main_wallet.address}")
    client = await connector.open_client(delegate, authority=main_wallet.address)
    try:
        await client.connect()
    except ExchangeError as e:
        raise DelegateClientFailed("Delegate client failed to subscribe", cause=e) from e
    logger.info("Delegate client created and subscribed")
    return client
