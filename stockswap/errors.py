"""
Exception taxonomy for the recommendation subsystem.

  StockSwapError
  ├── SessionError              — whole request degrades to fallback
  │   ├── RegistrationFailed
  │   └── AccountCreationFailed
  ├── PortfolioError            — degrades one strategy ...
  │   ├── PortfolioCreationFailed
  │   ├── PortfolioListFailed
  │   ├── SimulationFailed      — ... or every strategy, for the batched call
  │   └── SimulationLimitReached
  ├── SuggestionError           — never leaves the Stock Suggestion Client
  │   ├── TextGenerationFailed
  │   └── MalformedSuggestion
  └── TransportError            — timeout / connection failure at any call site

Nothing here ever reaches the caller of the orchestrator; these types exist so
each call site can decide *how much* of the recommendation to degrade.
"""

from __future__ import annotations

from typing import Optional

_BODY_PREVIEW_CHARS = 300


class StockSwapError(Exception):
    """Root of all StockSwap errors."""


class UpstreamHttpError(StockSwapError):
    """Base for errors that carry an upstream status code and body preview."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = (body or "")[:_BODY_PREVIEW_CHARS]
        detail = f" (status={status_code})" if status_code is not None else ""
        super().__init__(f"{message}{detail}")


# ── Session ───────────────────────────────────────────────────────────────────

class SessionError(UpstreamHttpError):
    """The (token, account) pair could not be established."""


class RegistrationFailed(SessionError):
    """Team registration returned non-2xx or a body without a token."""


class AccountCreationFailed(SessionError):
    """Account creation failed and could not be recovered from the account list."""


# ── Portfolio ─────────────────────────────────────────────────────────────────

class PortfolioError(UpstreamHttpError):
    """A portfolio lifecycle operation failed.

    Attributes:
        strategy_tag: Internal strategy the failure belongs to, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        strategy_tag: Optional[str] = None,
    ) -> None:
        self.strategy_tag = strategy_tag
        super().__init__(message, status_code=status_code, body=body)


class PortfolioCreationFailed(PortfolioError):
    pass


class PortfolioListFailed(PortfolioError):
    pass


class SimulationFailed(PortfolioError):
    """The batched simulation call failed for a reason other than the ceiling."""


class SimulationLimitReached(PortfolioError):
    """Upstream's cumulative months-per-account ceiling is exhausted."""


# ── Suggestion ────────────────────────────────────────────────────────────────

class SuggestionError(UpstreamHttpError):
    """Text generation produced nothing usable."""


class TextGenerationFailed(SuggestionError):
    pass


class MalformedSuggestion(SuggestionError):
    """The reply was rejected by a validation rule or held no usable ticker."""

    def __init__(self, message: str, reply: str = "", rule: Optional[str] = None) -> None:
        self.reply = reply
        self.rule = rule
        super().__init__(message)


# ── Transport ─────────────────────────────────────────────────────────────────

class TransportError(StockSwapError):
    """Timeout or connection failure talking to an upstream service.

    Attributes:
        operation: Logical operation name, e.g. ``"create_portfolio"``.
    """

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation}: {type(cause).__name__}: {cause}")
