"""In-memory exchange used for tests and paper runs.

``SimulatedExchange`` is a connector holding the whole exchange state;
clients opened from it share that state. Every call is recorded in
``exchange.calls`` so tests can count mutating calls, and failures can be
injected per operation.
"""
import itertools
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .errors import ExchangeError, ExchangeErrorKind
from .exchange import (
    ExchangeClient,
    ExchangeConnector,
    OrderConfirmation,
    OrderRequest,
    SpotPosition,
    SubAccountHandle,
)
from .markets import get_spot_market
from .wallet import WalletIdentity

MUTATING_CALLS = frozenset({"create_sub_account", "deposit", "register_delegate", "submit_order"})


@dataclass
class SimulatedAccount:
    authority: str
    sub_account_index: int
    address: str
    delegate: Optional[str] = None
    positions: Dict[int, SpotPosition] = field(default_factory=dict)
    reads_until_visible: int = 0
    stale_reads: int = 0  # get_sub_account misses while has_sub_account already sees it

    def handle(self) -> SubAccountHandle:
        return SubAccountHandle(
            authority=self.authority,
            sub_account_index=self.sub_account_index,
            address=self.address,
            delegate=self.delegate,
        )


class SimulatedExchange(ExchangeConnector):
    """A single-process stand-in for the exchange and its RPC node.

    Args:
        network: Network whose spot market precisions are used
        creation_lag_reads: Sub-account reads that still return None after a
                            creation, mimicking slow materialization
        settle_deposits: When False, deposits are accepted but never credited
    """

    def __init__(self, network: str = "devnet", *, creation_lag_reads: int = 0, settle_deposits: bool = True):
        self.network = network
        self.creation_lag_reads = creation_lag_reads
        self.settle_deposits = settle_deposits
        self.accounts: Dict[Tuple[str, int], SimulatedAccount] = {}
        self.wallet_balances: Dict[str, Decimal] = {}
        self.orders: List[Tuple[str, OrderConfirmation]] = []
        self.calls: List[Tuple[str, dict]] = []
        self.failures: Dict[str, ExchangeError] = {}
        self.clients: List["SimulatedExchangeClient"] = []
        self._tx_counter = itertools.count(1)

    # --- test setup helpers ---

    def fund_wallet(self, address: str, sol: Decimal) -> None:
        self.wallet_balances[address] = Decimal(str(sol))

    def seed_account(
        self,
        authority: str,
        sub_account_index: int = 0,
        *,
        collateral: Optional[Dict[int, Decimal]] = None,
        delegate: Optional[str] = None,
    ) -> SimulatedAccount:
        account = SimulatedAccount(
            authority=authority,
            sub_account_index=sub_account_index,
            address=self._account_address(authority, sub_account_index),
            delegate=delegate,
        )
        for market_index, amount in (collateral or {}).items():
            self._credit(account, market_index, Decimal(str(amount)))
        self.accounts[(authority, sub_account_index)] = account
        return account

    def fail(self, operation: str, error: ExchangeError) -> None:
        """Make every later call to ``operation`` raise ``error``."""
        self.failures[operation] = error

    def calls_to(self, operation: str) -> List[dict]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    @property
    def mutating_calls(self) -> List[Tuple[str, dict]]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    # --- connector ---

    async def get_wallet_balance(self, address: str) -> Decimal:
        self._record("get_wallet_balance", address=address)
        return self.wallet_balances.get(address, Decimal("0"))

    async def open_client(self, identity: WalletIdentity, authority: Optional[str] = None) -> "SimulatedExchangeClient":
        client = SimulatedExchangeClient(self, identity, authority or identity.address)
        self.clients.append(client)
        return client

    # --- internals shared with clients ---

    def _record(self, operation: str, **kwargs) -> None:
        self.calls.append((operation, kwargs))
        if operation in self.failures:
            raise self.failures[operation]

    def _next_tx(self) -> str:
        return f"simtx{next(self._tx_counter)}"

    @staticmethod
    def _account_address(authority: str, sub_account_index: int) -> str:
        return f"{authority[:8]}-user-{sub_account_index}"

    def _credit(self, account: SimulatedAccount, market_index: int, amount: Decimal) -> None:
        precision = get_spot_market(self.network, market_index).precision_exp
        raw = int(amount * (10 ** precision))
        current = account.positions.get(market_index)
        deposits = (current.cumulative_deposits if current else 0) + raw
        scaled = current.scaled_balance if current else 0
        account.positions[market_index] = SpotPosition(market_index, deposits, scaled)


class SimulatedExchangeClient(ExchangeClient):
    def __init__(self, exchange: SimulatedExchange, identity: WalletIdentity, authority: str):
        self.exchange = exchange
        self.identity = identity
        self._authority = authority
        self.connected = False

    @property
    def address(self) -> str:
        return self.identity.address

    @property
    def authority(self) -> str:
        return self._authority

    def _require_connected(self) -> None:
        if not self.connected:
            raise ExchangeError(ExchangeErrorKind.TRANSPORT, "Client not subscribed; call connect() first")

    def _require_owner(self, operation: str) -> None:
        if self.is_delegate:
            raise ExchangeError(
                ExchangeErrorKind.REJECTED,
                f"Delegate {self.address} is not permitted to {operation}",
            )

    def _account(self, sub_account_index: int) -> Optional[SimulatedAccount]:
        return self.exchange.accounts.get((self.authority, sub_account_index))

    async def connect(self) -> None:
        self.exchange._record("connect", address=self.address, authority=self.authority)
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def has_sub_account(self, sub_account_index: int) -> bool:
        self._require_connected()
        self.exchange._record("has_sub_account", sub_account_index=sub_account_index)
        account = self._account(sub_account_index)
        return account is not None and account.reads_until_visible == 0

    async def create_sub_account(self, sub_account_index: int) -> str:
        self._require_connected()
        self.exchange._record("create_sub_account", sub_account_index=sub_account_index)
        self._require_owner("create sub-accounts")
        if self._account(sub_account_index) is not None:
            raise ExchangeError(ExchangeErrorKind.REJECTED, f"Sub-account {sub_account_index} already exists")
        account = self.exchange.seed_account(self.authority, sub_account_index)
        account.reads_until_visible = self.exchange.creation_lag_reads
        return self.exchange._next_tx()

    async def get_sub_account(self, sub_account_index: int) -> Optional[SubAccountHandle]:
        self._require_connected()
        self.exchange._record("get_sub_account", sub_account_index=sub_account_index)
        account = self._account(sub_account_index)
        if account is None:
            return None
        if account.reads_until_visible > 0:
            account.reads_until_visible -= 1
            return None
        if account.stale_reads > 0:
            account.stale_reads -= 1
            return None
        return account.handle()

    async def get_position(self, market_index: int, sub_account_index: int = 0) -> Optional[SpotPosition]:
        self._require_connected()
        self.exchange._record("get_position", market_index=market_index, sub_account_index=sub_account_index)
        account = self._account(sub_account_index)
        if account is None:
            return None
        return account.positions.get(market_index)

    async def get_associated_token_account(self, market_index: int) -> str:
        self.exchange._record("get_associated_token_account", market_index=market_index)
        return f"{self.address[:8]}-ata-{market_index}"

    async def deposit(self, amount: Decimal, market_index: int, token_account: str, sub_account_index: int = 0) -> str:
        self._require_connected()
        self.exchange._record(
            "deposit",
            amount=amount,
            market_index=market_index,
            token_account=token_account,
            sub_account_index=sub_account_index,
        )
        self._require_owner("deposit")
        account = self._account(sub_account_index)
        if account is None:
            raise ExchangeError(ExchangeErrorKind.REJECTED, "AccountNotInitialized")
        balance = self.exchange.wallet_balances.get(self.address)
        if market_index == 1 and balance is not None:
            if balance < amount:
                raise ExchangeError(ExchangeErrorKind.SIMULATION, "insufficient lamports", logs=["Transfer: insufficient lamports"])
            self.exchange.wallet_balances[self.address] = balance - amount
        if self.exchange.settle_deposits:
            self.exchange._credit(account, market_index, amount)
        return self.exchange._next_tx()

    async def register_delegate(self, delegate: str, sub_account_index: int) -> str:
        self._require_connected()
        self.exchange._record("register_delegate", delegate=delegate, sub_account_index=sub_account_index)
        self._require_owner("change the delegate")
        account = self._account(sub_account_index)
        if account is None:
            raise ExchangeError(ExchangeErrorKind.REJECTED, "AccountNotInitialized")
        account.delegate = delegate
        return self.exchange._next_tx()

    async def submit_order(self, order: OrderRequest, sub_account_index: int = 0) -> OrderConfirmation:
        self._require_connected()
        self.exchange._record("submit_order", order=order, sub_account_index=sub_account_index)
        account = self._account(sub_account_index)
        if account is None:
            raise ExchangeError(ExchangeErrorKind.SIMULATION, "AccountNotInitialized", logs=["Error: AccountNotInitialized"])
        if self.is_delegate and account.delegate != self.address:
            raise ExchangeError(
                ExchangeErrorKind.SIMULATION,
                "signer is not the authority or delegate",
                logs=["Program log: AnchorError caused by account: authority. Error Code: ConstraintHasOne."],
            )
        confirmation = OrderConfirmation(
            tx_signature=self.exchange._next_tx(),
            order=order,
            sub_account_index=sub_account_index,
        )
        self.exchange.orders.append((self.address, confirmation))
        return confirmation

