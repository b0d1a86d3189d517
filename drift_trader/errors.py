"""Error taxonomy for a bot run.

Every failure that ends a run is a ``WorkflowError`` carrying an ``ErrorKind``
tag, so callers switch on ``error.kind`` instead of inspecting exception
types. All kinds are terminal: nothing here is retried beyond the bounded
polls of the provisioner and the single deposit of the collateral guard.

Exchange clients raise ``ExchangeError``; its ``kind`` tells a pre-flight
simulation rejection apart from an on-chain rejection or a transport problem.
"""
from enum import Enum
from typing import List, Optional, Sequence


class ExchangeErrorKind(Enum):
    SIMULATION = "simulation"  # rejected during pre-flight simulation
    REJECTED = "rejected"  # exchange refused the instruction
    TRANSPORT = "transport"  # RPC / network / timeout


class ExchangeError(Exception):
    """Failure reported by an exchange client."""

    def __init__(self, kind: ExchangeErrorKind, message: str, logs: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.logs: List[str] = list(logs or [])

    def __repr__(self):
        return f"ExchangeError(kind={self.kind.value}, message={self.message!r})"


class ErrorKind(Enum):
    WALLET_LOAD_FAILED = "WalletLoadFailed"
    INSUFFICIENT_WALLET_BALANCE = "InsufficientWalletBalance"
    ACCOUNT_PROVISIONING_TIMEOUT = "AccountProvisioningTimeout"
    ACCOUNT_CREATION_REJECTED = "AccountCreationRejected"
    INSUFFICIENT_COLLATERAL = "InsufficientCollateral"
    INSUFFICIENT_COLLATERAL_AT_SUBMISSION = "InsufficientCollateralAtSubmission"
    COLLATERAL_DEPOSIT_FAILED = "CollateralDepositFailed"
    DELEGATE_REGISTRATION_FAILED = "DelegateRegistrationFailed"
    DELEGATE_CLIENT_FAILED = "DelegateClientFailed"
    UNKNOWN_MARKET = "UnknownMarket"
    SIMULATION_FAILURE = "SimulationFailure"
    ORDER_TOO_SMALL = "OrderTooSmall"
    SUBMISSION_FAILURE = "SubmissionFailure"
    UNEXPECTED = "UnexpectedFailure"


class WorkflowError(Exception):
    """Base class for run-terminating failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self):
        if self.cause is not None:
            return f"{self.message} (cause: {self.cause})"
        return self.message


class WalletLoadFailed(WorkflowError):
    kind = ErrorKind.WALLET_LOAD_FAILED


class InsufficientWalletBalance(WorkflowError):
    kind = ErrorKind.INSUFFICIENT_WALLET_BALANCE


class AccountProvisioningTimeout(WorkflowError):
    kind = ErrorKind.ACCOUNT_PROVISIONING_TIMEOUT


class AccountCreationRejected(WorkflowError):
    kind = ErrorKind.ACCOUNT_CREATION_REJECTED


class InsufficientCollateral(WorkflowError):
    kind = ErrorKind.INSUFFICIENT_COLLATERAL


class InsufficientCollateralAtSubmission(WorkflowError):
    kind = ErrorKind.INSUFFICIENT_COLLATERAL_AT_SUBMISSION


class CollateralDepositFailed(WorkflowError):
    kind = ErrorKind.COLLATERAL_DEPOSIT_FAILED


class DelegateRegistrationFailed(WorkflowError):
    kind = ErrorKind.DELEGATE_REGISTRATION_FAILED


class DelegateClientFailed(WorkflowError):
    kind = ErrorKind.DELEGATE_CLIENT_FAILED


class UnknownMarket(WorkflowError):
    kind = ErrorKind.UNKNOWN_MARKET


class SimulationFailure(WorkflowError):
    """Order rejected during pre-flight simulation. ``logs`` holds the raw trace."""

    kind = ErrorKind.SIMULATION_FAILURE

    def __init__(self, message: str, cause: Optional[BaseException] = None, logs: Optional[Sequence[str]] = None):
        super().__init__(message, cause)
        self.logs: List[str] = list(logs or [])


class OrderTooSmall(SimulationFailure):
    kind = ErrorKind.ORDER_TOO_SMALL


class SubmissionFailure(WorkflowError):
    kind = ErrorKind.SUBMISSION_FAILURE


class UnexpectedFailure(WorkflowError):
    kind = ErrorKind.UNEXPECTED
