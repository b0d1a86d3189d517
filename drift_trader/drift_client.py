"""Drift protocol binding built on driftpy.

Install with ``pip install drift-trader[drift]``. Each ``DriftExchangeClient``
wraps one driftpy ``DriftClient`` polling account state through a shared
``BulkAccountLoader``; the connector owns the RPC connection.
"""
from decimal import Decimal
from typing import List, Optional

from anchorpy import Wallet
from driftpy.account_subscription_config import AccountSubscriptionConfig
from driftpy.accounts.bulk_account_loader import BulkAccountLoader
from driftpy.drift_client import DriftClient
from driftpy.types import MarketType, OrderParams
from driftpy.types import OrderType as DriftOrderType
from driftpy.types import PositionDirection as DriftPositionDirection
from solana.rpc.async_api import AsyncClient
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .config import BotConfig
from .errors import ExchangeError, ExchangeErrorKind
from .exchange import (
    ExchangeClient,
    ExchangeConnector,
    OrderConfirmation,
    OrderRequest,
    OrderType,
    PositionDirection,
    SpotPosition,
    SubAccountHandle,
)
from .logging_setup import logger
from .markets import WRAPPED_SOL_MINT, get_spot_market
from .rpc import SolanaRpcClient, SolanaRpcError
from .wallet import WalletIdentity


def _simulation_logs(exc: BaseException) -> Optional[List[str]]:
    """Pull preflight simulation logs out of a solana-py RPCException, if any."""
    for arg in getattr(exc, "args", ()):
        logs = getattr(getattr(arg, "data", None), "logs", None)
        if logs:
            return [str(line) for line in logs]
    logs = getattr(exc, "logs", None)
    return [str(line) for line in logs] if logs else None


def to_exchange_error(exc: Exception) -> ExchangeError:
    if isinstance(exc, ExchangeError):
        return exc
    logs = _simulation_logs(exc)
    if logs is not None:
        return ExchangeError(ExchangeErrorKind.SIMULATION, str(exc), logs=logs)
    if isinstance(exc, RPCException):
        return ExchangeError(ExchangeErrorKind.REJECTED, str(exc))
    return ExchangeError(ExchangeErrorKind.TRANSPORT, f"{type(exc).__name__}: {exc}")


def _signature(result) -> str:
    return str(getattr(result, "tx_sig", result))


class DriftExchangeClient(ExchangeClient):
    def __init__(self, connector: "DriftConnector", identity: WalletIdentity, authority: Optional[str] = None):
        self.connector = connector
        self.identity = identity
        self._authority = authority or identity.address
        sub_account_ids = sorted({connector.config.trading.sub_account_index, connector.config.trading.delegate_sub_account_id})
        self.drift_client = DriftClient(
            connector.connection,
            Wallet(Keypair.from_bytes(identity.secret_key)),
            connector.config.trading.network,
            authority=Pubkey.from_string(self._authority),
            account_subscription=AccountSubscriptionConfig("polling", bulk_account_loader=connector.account_loader),
            sub_account_ids=sub_account_ids,
            active_sub_account_id=connector.config.trading.sub_account_index,
        )
        self._users: set = set()

    @property
    def address(self) -> str:
        return self.identity.address

    @property
    def authority(self) -> str:
        return self._authority

    async def connect(self) -> None:
        try:
            await self.drift_client.subscribe()
        except Exception as e:
            raise to_exchange_error(e) from e
        logger.debug(f"Drift client subscribed | signer={self.address} authority={self.authority}")

    async def close(self) -> None:
        await self.drift_client.unsubscribe()

    async def _account_exists(self, sub_account_index: int) -> bool:
        pda = self.drift_client.get_user_account_public_key(sub_account_index)
        try:
            resp = await self.connector.connection.get_account_info(pda)
        except Exception as e:
            raise to_exchange_error(e) from e
        return resp.value is not None

    async def _user(self, sub_account_index: int):
        if sub_account_index not in self._users:
            await self.drift_client.add_user(sub_account_index)
            self._users.add(sub_account_index)
        return self.drift_client.get_user(sub_account_index)

    async def has_sub_account(self, sub_account_index: int) -> bool:
        return await self._account_exists(sub_account_index)

    async def create_sub_account(self, sub_account_index: int) -> str:
        try:
            result = await self.drift_client.initialize_user(sub_account_id=sub_account_index)
        except Exception as e:
            raise to_exchange_error(e) from e
        return _signature(result)

    async def get_sub_account(self, sub_account_index: int) -> Optional[SubAccountHandle]:
        if not await self._account_exists(sub_account_index):
            return None
        try:
            user = await self._user(sub_account_index)
            account = user.get_user_account()
        except Exception as e:
            raise to_exchange_error(e) from e
        delegate = str(account.delegate) if account.delegate != Pubkey.default() else None
        return SubAccountHandle(
            authority=self.authority,
            sub_account_index=sub_account_index,
            address=str(self.drift_client.get_user_account_public_key(sub_account_index)),
            delegate=delegate,
        )

    async def get_position(self, market_index: int, sub_account_index: int = 0) -> Optional[SpotPosition]:
        try:
            user = await self._user(sub_account_index)
            position = user.get_spot_position(market_index)
        except Exception as e:
            raise to_exchange_error(e) from e
        if position is None:
            return None
        return SpotPosition(
            market_index=market_index,
            cumulative_deposits=int(position.cumulative_deposits),
            scaled_balance=int(position.scaled_balance),
        )

    async def get_associated_token_account(self, market_index: int) -> str:
        market = get_spot_market(self.connector.config.trading.network, market_index)
        if market.mint == WRAPPED_SOL_MINT:
            # driftpy wraps native SOL when the token account is the wallet itself
            return self.address
        return str(self.drift_client.get_associated_token_account_public_key(market_index))

    async def deposit(self, amount: Decimal, market_index: int, token_account: str, sub_account_index: int = 0) -> str:
        try:
            raw_amount = self.drift_client.convert_to_spot_precision(float(amount), market_index)
            result = await self.drift_client.deposit(
                raw_amount,
                market_index,
                Pubkey.from_string(token_account),
                sub_account_id=sub_account_index,
            )
        except Exception as e:
            raise to_exchange_error(e) from e
        return _signature(result)

    async def register_delegate(self, delegate: str, sub_account_index: int) -> str:
        try:
            result = await self.drift_client.update_user_delegate(Pubkey.from_string(delegate), sub_account_index)
        except Exception as e:
            raise to_exchange_error(e) from e
        return _signature(result)

    async def submit_order(self, order: OrderRequest, sub_account_index: int = 0) -> OrderConfirmation:
        order_type = DriftOrderType.Market() if order.order_type is OrderType.MARKET else DriftOrderType.Limit()
        direction = (
            DriftPositionDirection.Long() if order.direction is PositionDirection.LONG else DriftPositionDirection.Short()
        )
        try:
            params = OrderParams(
                order_type=order_type,
                market_type=MarketType.Perp(),
                market_index=order.market_index,
                direction=direction,
                base_asset_amount=self.drift_client.convert_to_perp_precision(float(order.base_asset_amount)),
                price=self.drift_client.convert_to_price_precision(float(order.price)),
            )
            result = await self.drift_client.place_perp_order(params, sub_account_id=sub_account_index)
        except Exception as e:
            raise to_exchange_error(e) from e
        return OrderConfirmation(tx_signature=_signature(result), order=order, sub_account_index=sub_account_index)


class DriftConnector(ExchangeConnector):
    """Shared Solana connection for Drift clients of one run."""

    def __init__(self, config: BotConfig):
        self.config = config
        url = config.rpc.endpoint(config.trading.network)
        self.connection = AsyncClient(url)
        self.account_loader = BulkAccountLoader(self.connection, config.rpc.commitment, config.rpc.poll_interval_ms / 1000)
        self.rpc = SolanaRpcClient(
            url,
            commitment=config.rpc.commitment,
            timeout=config.rpc.timeout,
            max_retries=config.rpc.max_retries,
            max_backoff_seconds=config.rpc.max_backoff_seconds,
        )

    async def get_wallet_balance(self, address: str) -> Decimal:
        await self.rpc.open()
        try:
            return await self.rpc.get_balance_sol(address)
        except SolanaRpcError as e:
            raise ExchangeError(ExchangeErrorKind.TRANSPORT, str(e)) from e

    async def open_client(self, identity: WalletIdentity, authority: Optional[str] = None) -> DriftExchangeClient:
        return DriftExchangeClient(self, identity, authority)

    async def close(self) -> None:
        await self.rpc.close()
        await self.connection.close()
