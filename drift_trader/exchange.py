"""
Exchange client capability consumed by the bot.

The abstract ``ExchangeClient`` covers the handful of exchange operations the
workflow needs: sub-account lookup and creation, collateral reads and deposits,
delegate registration and order submission. An ``ExchangeConnector`` owns the
shared RPC connection and opens clients bound to a wallet identity, optionally
acting for another wallet's authority (delegate mode).

All amounts crossing this interface are Decimal in human units (SOL, USD);
implementations convert to exchange precision. Failures are raised as
``ExchangeError`` with a kind tag.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from .wallet import WalletIdentity


class OrderType(Enum):
    MARKET = "market"
    LIMIT = "limit"


class PositionDirection(Enum):
    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class SubAccountHandle:
    """Exchange-side trading sub-account keyed by (authority, index)."""

    authority: str
    sub_account_index: int
    address: str
    delegate: Optional[str] = None


@dataclass(frozen=True)
class SpotPosition:
    """Raw spot balance record for one market, in the market's precision."""

    market_index: int
    cumulative_deposits: int
    scaled_balance: int


@dataclass(frozen=True)
class OrderRequest:
    order_type: OrderType
    market_index: int
    direction: PositionDirection
    base_asset_amount: Decimal
    price: Decimal

    def to_dict(self) -> dict:
        return {
            "order_type": self.order_type.value,
            "market_index": self.market_index,
            "direction": self.direction.value,
            "base_asset_amount": str(self.base_asset_amount),
            "price": str(self.price),
        }


@dataclass(frozen=True)
class OrderConfirmation:
    tx_signature: str
    order: OrderRequest
    sub_account_index: int


class ExchangeClient(ABC):
    """Abstract exchange client bound to one signing identity."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Address of the signing identity."""

    @property
    @abstractmethod
    def authority(self) -> str:
        """Address of the wallet that owns the sub-accounts this client acts on."""

    @property
    def is_delegate(self) -> bool:
        return self.address != self.authority

    @abstractmethod
    async def connect(self) -> None:
        """Subscribe to account state. Must be awaited before any other call."""

    @abstractmethod
    async def close(self) -> None:
        """Stop background subscriptions."""

    @abstractmethod
    async def has_sub_account(self, sub_account_index: int) -> bool:
        pass

    @abstractmethod
    async def create_sub_account(self, sub_account_index: int) -> str:
        """Create the sub-account. Returns the transaction signature."""

    @abstractmethod
    async def get_sub_account(self, sub_account_index: int) -> Optional[SubAccountHandle]:
        """Point-in-time read of the sub-account; None while it does not exist."""

    @abstractmethod
    async def get_position(self, market_index: int, sub_account_index: int = 0) -> Optional[SpotPosition]:
        pass

    @abstractmethod
    async def get_associated_token_account(self, market_index: int) -> str:
        pass

    @abstractmethod
    async def deposit(self, amount: Decimal, market_index: int, token_account: str, sub_account_index: int = 0) -> str:
        """Deposit collateral. Returns the transaction signature."""

    @abstractmethod
    async def register_delegate(self, delegate: str, sub_account_index: int) -> str:
        """Set ``delegate`` as the sub-account's trading delegate."""

    @abstractmethod
    async def submit_order(self, order: OrderRequest, sub_account_index: int = 0) -> OrderConfirmation:
        pass


class ExchangeConnector(ABC):
    """Shared connection that opens exchange clients."""

    @abstractmethod
    async def get_wallet_balance(self, address: str) -> Decimal:
        """Native SOL balance of a wallet."""

    @abstractmethod
    async def open_client(self, identity: WalletIdentity, authority: Optional[str] = None) -> ExchangeClient:
        """Open an unconnected client signing with ``identity``.

        ``authority`` is the owning wallet when ``identity`` is a delegate.
        """

    async def close(self) -> None:
        pass
