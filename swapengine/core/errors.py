"""
Trade errors and user-facing error categories.

Internal helpers raise these; the engine's public surface (router, venues,
tier coordinator, monitor) converts them into ExecutionResult values.
"""
from dataclasses import dataclass
from typing import Optional


class SwapEngineError(Exception):
    """Base class for engine errors."""


class TradeError(SwapEngineError):
    """A trade step failed. `retryable` says whether the same step may be tried again."""

    retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class NoRouteError(TradeError):
    """No viable route (illiquid, delisted, unsupported AMM)."""

    retryable = False


class InsufficientBalanceError(TradeError):
    retryable = False


class SimulationError(TradeError):
    """Pre-flight simulation rejected the trade. Retry only after re-quoting."""


class TransactionFailedError(TradeError):
    """Transaction reverted on-chain. Retry with a fresh blockhash."""


class ConfirmationTimeoutError(TradeError):
    """Signature never reached confirmed/finalized within the timeout."""


class BundleRejectedError(TradeError):
    """Every block-engine endpoint rejected the bundle."""


@dataclass(frozen=True)
class ErrorCategory:
    """User-facing classification of a raw venue/RPC error."""
    message: str
    advice: str
    is_retryable: bool


def classify_trade_error(error: str) -> ErrorCategory:
    """
    Translate Jupiter/PumpPortal/RPC error text into a category.

    Args:
        error: Raw error string

    Returns:
        ErrorCategory with a short message, advice and retryability
    """
    lower = (error or "").lower()

    no_route = ('could not find any route', 'no route found', 'route not found', 'no viable route')
    if any(p in lower for p in no_route):
        return ErrorCategory(
            message="No swap route available",
            advice="This token may have no liquidity or has been rugged.",
            is_retryable=False,
        )

    if 'simple amms are not supported' in lower or 'shared accounts' in lower:
        return ErrorCategory(
            message="Token swap not supported",
            advice="The pool uses an AMM type the aggregator cannot swap.",
            is_retryable=False,
        )

    if 'slippage' in lower or 'price moved' in lower:
        return ErrorCategory(
            message="Price moved too much",
            advice="Try again with higher slippage or a smaller amount.",
            is_retryable=True,
        )

    if 'insufficient' in lower or 'not enough' in lower:
        return ErrorCategory(
            message="Insufficient balance",
            advice="Check your wallet balance and try again.",
            is_retryable=False,
        )

    if 'block height exceeded' in lower or 'expired' in lower:
        return ErrorCategory(
            message="Transaction timed out",
            advice="Network is congested. Please try again.",
            is_retryable=True,
        )

    if 'simulation failed' in lower:
        return ErrorCategory(
            message="Transaction simulation failed",
            advice="The transaction would fail on-chain. Try with different settings.",
            is_retryable=True,
        )

    return ErrorCategory(
        message="Transaction failed",
        advice=error or "Unknown error",
        is_retryable=True,
    )


def is_retryable(exc: BaseException) -> bool:
    """Whether a raised error may be retried by a backoff loop."""
    if isinstance(exc, TradeError):
        return exc.retryable
    return classify_trade_error(str(exc)).is_retryable


def is_simulation_failure(error: str) -> bool:
    """Whether a node or relay rejected the transaction in pre-flight simulation."""
    return 'simulation failed' in (error or "").lower()


def error_from_message(message: str) -> TradeError:
    """Raise-ready TradeError subclass for a raw venue error message."""
    category = classify_trade_error(message)
    if category.message in ("No swap route available", "Token swap not supported"):
        return NoRouteError(message)
    if category.message == "Insufficient balance":
        return InsufficientBalanceError(message)
    if is_simulation_failure(message):
        return SimulationError(message)
    return TradeError(message, retryable=category.is_retryable)
