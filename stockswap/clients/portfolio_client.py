"""
Portfolio lifecycle: create (or reuse), list, purge and simulate portfolios.

Upstream limits this client enforces on the caller's behalf:
  - At most ``max_portfolios`` (3) portfolios per account. When a request
    needs more than the account can hold, every portfolio it cannot reuse
    is deleted first (sequentially, tolerating individual failures).
  - A cumulative ``months_ceiling`` (60) of simulated months per account;
    upstream signals exhaustion with ``SimulationLimitReached``.

Reuse rule: an existing portfolio with the same strategy and an initial
amount within ``amount_epsilon`` (0.01) of the requested amount is returned
instead of creating a duplicate, so a retried request never accumulates
portfolios.

Each single-portfolio operation is retried up to ``operation_retries``
extra times on transport errors and 5xx responses; 4xx responses are final.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar, Union

from stockswap.clients.finance_client import FinanceApiClient
from stockswap.config import FinanceApiConfig
from stockswap.errors import (
    PortfolioCreationFailed,
    PortfolioError,
    PortfolioListFailed,
    SimulationFailed,
    TransportError,
)
from stockswap.models.portfolio import Portfolio, SimulationResult
from stockswap.models.session import Credentials
from stockswap.pipeline.cancellation import CancellationToken, is_cancelled
from stockswap.taxonomy.strategy_taxonomy import StrategyTag

logger = logging.getLogger(__name__)

T = TypeVar("T")

PreparedPortfolio = Union[Portfolio, PortfolioError]


class PortfolioLifecycleClient:
    """Portfolio operations for one request's session.

    Args:
        api: Wire-layer client bound to the request's event loop.
        config: Finance API settings (limits, epsilon, retries, delays).
        cancel_token: Checked before every retry; a cancelled request never
            re-enters a retry loop.
    """

    def __init__(
        self,
        api: FinanceApiClient,
        config: FinanceApiConfig,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.api = api
        self.config = config
        self.cancel_token = cancel_token

    # ── Single operations ─────────────────────────────────────────────────────

    async def list_portfolios(self, session: Credentials) -> list[Portfolio]:
        """All portfolios on the session's account.

        Raises:
            PortfolioListFailed: After retries are exhausted.
        """
        return await self._with_retries(
            "list_portfolios",
            lambda: self.api.list_portfolios(session),
            PortfolioListFailed,
        )

    async def delete_portfolio(self, session: Credentials, portfolio_id: str) -> None:
        """Delete one portfolio.

        Raises:
            PortfolioError: After retries are exhausted.
        """
        await self._with_retries(
            "delete_portfolio",
            lambda: self.api.delete_portfolio(session, portfolio_id),
            PortfolioError,
        )

    async def simulate(self, session: Credentials, months: int) -> list[SimulationResult]:
        """One batched simulation over every portfolio on the account.

        Not retried: a repeated call would consume the months ceiling twice.

        Raises:
            SimulationLimitReached: The account's months ceiling is exhausted.
            SimulationFailed: Any other failure, timeouts included.
        """
        try:
            results = await self.api.simulate(session, months)
        except TransportError as exc:
            raise SimulationFailed(f"Simulation failed: {exc}") from exc
        logger.info(
            "Simulated %d months: %d result(s) for %s",
            months, len(results), sorted(r.strategy_tag.value for r in results),
        )
        return results

    async def create_portfolio(
        self,
        session: Credentials,
        strategy_tag: StrategyTag,
        amount: float,
    ) -> Portfolio:
        """Create a portfolio for ``strategy_tag``, reusing a matching one.

        Lists the account first. A portfolio of the same strategy and amount
        is returned as-is. Otherwise, if the account is at or above the cap,
        every existing portfolio is deleted before the new one is created.

        Raises:
            PortfolioCreationFailed: Creation failed after retries.
        """
        tag = StrategyTag(strategy_tag)
        existing = await self._list_or_empty(session)

        match = self.find_reusable(existing, tag, amount, self.config.amount_epsilon)
        if match is not None:
            logger.info("Reusing portfolio %s for %s @ %.2f", match.id, tag, amount)
            return match

        if len(existing) >= self.config.max_portfolios:
            await self.purge_portfolios(session, existing)

        return await self._create_one(session, tag, amount)

    # ── Batch operations ──────────────────────────────────────────────────────

    async def prepare_portfolios(
        self,
        session: Credentials,
        strategies: Sequence[StrategyTag],
        amount: float,
    ) -> dict[StrategyTag, PreparedPortfolio]:
        """Make sure one portfolio per strategy exists at ``amount``.

        The account is listed once. Matching portfolios are reused; if the
        portfolios still needed would push the account over the cap, every
        portfolio not being reused is purged first. Missing portfolios are
        then created concurrently and independently.

        Returns:
            Strategy → ``Portfolio`` on success, or the ``PortfolioError``
            that strategy failed with. Never raises for a single strategy.
        """
        existing = await self._list_or_empty(session)

        prepared: dict[StrategyTag, PreparedPortfolio] = {}
        reused_ids: set[str] = set()
        missing: list[StrategyTag] = []
        for tag in strategies:
            candidates = [p for p in existing if p.id not in reused_ids]
            match = self.find_reusable(candidates, tag, amount, self.config.amount_epsilon)
            if match is not None:
                prepared[tag] = match
                reused_ids.add(match.id)
            else:
                missing.append(tag)

        if reused_ids:
            logger.info("Reusing %d existing portfolio(s).", len(reused_ids))
        if not missing:
            return prepared

        if len(existing) + len(missing) > self.config.max_portfolios:
            stale = [p for p in existing if p.id not in reused_ids]
            await self.purge_portfolios(session, stale)

        outcomes = await asyncio.gather(
            *(self._create_one(session, tag, amount) for tag in missing),
            return_exceptions=True,
        )
        for tag, outcome in zip(missing, outcomes):
            if isinstance(outcome, PortfolioError):
                logger.warning("Portfolio for %s unavailable: %s", tag, outcome)
                prepared[tag] = outcome
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                prepared[tag] = outcome
        return prepared

    async def purge_portfolios(
        self,
        session: Credentials,
        portfolios: Sequence[Portfolio],
    ) -> int:
        """Delete ``portfolios`` one at a time; return how many were deleted.

        Individual failures are logged and skipped.
        """
        if not portfolios:
            return 0
        logger.info(
            "Portfolio cap (%d) reached; deleting %d portfolio(s).",
            self.config.max_portfolios, len(portfolios),
        )
        deleted = 0
        for i, portfolio in enumerate(portfolios):
            if i and self.config.delete_delay_s > 0:
                await asyncio.sleep(self.config.delete_delay_s)
            try:
                await self.delete_portfolio(session, portfolio.id)
                deleted += 1
            except PortfolioError as exc:
                logger.warning("Could not delete portfolio %s: %s", portfolio.id, exc)
        return deleted

    @staticmethod
    def find_reusable(
        portfolios: Sequence[Portfolio],
        strategy_tag: StrategyTag,
        amount: float,
        epsilon: float = 0.01,
    ) -> Optional[Portfolio]:
        """First portfolio with the same strategy and an amount within ``epsilon``."""
        for portfolio in portfolios:
            if (
                portfolio.strategy_tag == strategy_tag
                and abs(portfolio.initial_amount - amount) < epsilon
            ):
                return portfolio
        return None

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _list_or_empty(self, session: Credentials) -> list[Portfolio]:
        try:
            return await self.list_portfolios(session)
        except PortfolioListFailed as exc:
            logger.warning("Could not list portfolios; assuming none exist: %s", exc)
            return []

    async def _create_one(
        self,
        session: Credentials,
        tag: StrategyTag,
        amount: float,
    ) -> Portfolio:
        try:
            portfolio = await self._with_retries(
                f"create_portfolio[{tag}]",
                lambda: self.api.create_portfolio(session, tag, amount),
                PortfolioCreationFailed,
            )
        except PortfolioError as exc:
            if exc.strategy_tag is None:
                exc.strategy_tag = tag
            raise
        logger.info("Created portfolio %s for %s @ %.2f", portfolio.id, tag, amount)
        return portfolio

    async def _with_retries(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        error_type: type[PortfolioError],
    ) -> T:
        """Run ``call`` with up to ``operation_retries`` retries.

        Transport errors and 5xx responses are retried; anything else is
        raised at once. A transport error that survives the last attempt is
        re-raised as ``error_type``.
        """
        attempts = 1 + self.config.operation_retries
        for attempt in range(1, attempts + 1):
            try:
                return await call()
            except TransportError as exc:
                if attempt == attempts or is_cancelled(self.cancel_token):
                    raise error_type(f"{operation} failed: {exc}") from exc
                logger.debug("%s attempt %d/%d: %s", operation, attempt, attempts, exc)
            except PortfolioError as exc:
                retryable = exc.status_code is not None and exc.status_code >= 500
                if not retryable or attempt == attempts or is_cancelled(self.cancel_token):
                    raise
                logger.debug("%s attempt %d/%d: %s", operation, attempt, attempts, exc)
        raise AssertionError("unreachable")
