"""
Recommendation orchestration: one product descriptor in, one complete
``Recommendation`` out.

The ``RecommendationOrchestrator`` runs a small state machine per request:

  INIT ─► SESSION_READY ─► PORTFOLIOS_REQUESTED ─► SIMULATED ─► SUGGESTIONS_READY ─► MERGED
    │            (or SESSION_FAILED)        (or SIM_FAILED)
    └──────────────────────────► FALLBACK_ONLY  (from any state)

  Step 1 — Clean:       Validate the descriptor; default a missing/bad price.
  Step 2 — Session:     ``SessionBootstrapper.ensure_session()``.
  Step 3 — Portfolios:  Reuse or create one portfolio per strategy (concurrent).
  Step 4 — Simulate:    One batched call over the ready portfolios.
  Step 5 — Project:     Live numbers where a result matched, multipliers elsewhere.
  Step 6 — Suggest:     ``StockSuggestionClient`` runs concurrently with 3–5.
  Step 7 — Merge:       overall source = live / fallback / mixed.

Failure isolation
-----------------
- Session failure:          Whole flow retried up to ``flow_retries`` times
                            (while budget remains and the request is not
                            cancelled); then FALLBACK_ONLY.
- Portfolio failure:        That strategy falls back; the others continue.
- Simulation failure:       Every strategy falls back for this request.
- Months ceiling reached:   Account marked exhausted in the usage ledger; no
                            live simulation is attempted for it again.
- Suggestion failure:       Absorbed by the suggestion client (fallback tickers).
- Budget exhausted:         FALLBACK_ONLY.
- Anything unexpected:      Logged, recorded in the trace, FALLBACK_ONLY.

Nothing propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Mapping, Optional, Sequence, Union
from uuid import uuid4

import httpx

from stockswap.clients.finance_client import FinanceApiClient
from stockswap.clients.portfolio_client import PortfolioLifecycleClient
from stockswap.clients.session import SessionBootstrapper
from stockswap.clients.suggestion_client import StockSuggestionClient
from stockswap.clients.textgen_client import TextGenerationClient
from stockswap.config import AppConfig
from stockswap.db.repositories.credential_repo import CredentialStore
from stockswap.errors import PortfolioError, SessionError, SimulationLimitReached
from stockswap.models.portfolio import Portfolio, SimulationResult
from stockswap.models.product import ProductDescriptor, clean_descriptor
from stockswap.models.recommendation import (
    PortfolioProjection,
    Recommendation,
    StockSuggestion,
)
from stockswap.models.session import Credentials
from stockswap.pipeline.cancellation import CancellationToken, is_cancelled
from stockswap.recommendations.fallback import fallback_projection, fallback_suggestion
from stockswap.taxonomy.strategy_taxonomy import (
    DEFAULT_STRATEGIES,
    OverallSource,
    RecommendationSource,
    StrategyTag,
    overall_source,
)
from stockswap.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

DescriptorInput = Union[ProductDescriptor, Mapping[str, Any], None]


class OrchestratorState(StrEnum):
    """States of one recommendation request."""

    INIT = "init"
    SESSION_READY = "session_ready"
    SESSION_FAILED = "session_failed"
    PORTFOLIOS_REQUESTED = "portfolios_requested"
    SIMULATED = "simulated"
    SIM_FAILED = "sim_failed"
    SUGGESTIONS_READY = "suggestions_ready"
    MERGED = "merged"
    FALLBACK_ONLY = "fallback_only"


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class RequestTrace:
    """Diagnostic record of one request's path through the state machine.

    Attributes:
        request_id:  Short random id used in log lines.
        started_at:  UTC datetime when the request started.
        finished_at: UTC datetime when the request finished.
        states:      States entered, in order (one flow attempt after another).
        errors:      Every degraded step, as ``"step: message"``.
        attempts:    Whole-flow attempts made.
        cancelled:   True if the token was cancelled when the request ended.
    """

    request_id:  str                      = field(default_factory=lambda: uuid4().hex[:12])
    started_at:  datetime                 = field(default_factory=utcnow)
    finished_at: Optional[datetime]       = None
    states:      list[OrchestratorState]  = field(default_factory=lambda: [OrchestratorState.INIT])
    errors:      list[str]                = field(default_factory=list)
    attempts:    int                      = 0
    cancelled:   bool                     = False

    @property
    def final_state(self) -> OrchestratorState:
        return self.states[-1]

    def enter(self, state: OrchestratorState) -> None:
        self.states.append(state)
        logger.debug("[%s] -> %s", self.request_id, state)

    def record_error(self, step: str, error: Union[BaseException, str]) -> None:
        message = str(error) or type(error).__name__
        self.errors.append(f"{step}: {message}")
        logger.warning("[%s] %s degraded: %s", self.request_id, step, message)


# ── Pure helpers ──────────────────────────────────────────────────────────────

def live_projection(
    strategy_tag: StrategyTag,
    amount: float,
    result: SimulationResult,
    portfolio_id: Optional[str] = None,
) -> PortfolioProjection:
    """Projection from a simulation result (``source = live``).

    ``return_percentage`` is upstream's figure when it sent one, otherwise
    computed from the projected value.
    """
    total_return = result.projected_value - amount
    if result.percentage_return is not None:
        pct = result.percentage_return
    else:
        pct = total_return / amount * 100
    return PortfolioProjection(
        strategy_tag=strategy_tag,
        initial_amount=round(amount, 2),
        projected_value=round(result.projected_value, 2),
        total_return=round(total_return, 2),
        return_percentage=round(pct, 2),
        time_period=f"{result.months_simulated} months",
        source=RecommendationSource.LIVE,
        growth_trend=result.growth_trend,
        portfolio_id=result.portfolio_id or portfolio_id,
    )


def match_results(
    results: Sequence[SimulationResult],
    ready: Mapping[StrategyTag, str],
) -> dict[StrategyTag, SimulationResult]:
    """Pick at most one simulation result per prepared strategy.

    Results are correlated by strategy. When several share a strategy (a
    stale portfolio survived a failed delete), the one echoing the id
    prepared for this request wins; otherwise the first one is used.
    """
    matched: dict[StrategyTag, SimulationResult] = {}
    for tag, portfolio_id in ready.items():
        candidates = [r for r in results if r.strategy_tag == tag]
        if not candidates:
            continue
        exact = next((r for r in candidates if r.portfolio_id == portfolio_id), None)
        matched[tag] = exact or candidates[0]
    return matched


def merge_recommendation(
    product: ProductDescriptor,
    live_results: Mapping[StrategyTag, SimulationResult],
    suggestion: StockSuggestion,
    portfolio_ids: Optional[Mapping[StrategyTag, str]] = None,
) -> Recommendation:
    """Combine per-strategy results and the suggestion into a recommendation."""
    portfolio_ids = portfolio_ids or {}
    projections: list[PortfolioProjection] = []
    for tag in DEFAULT_STRATEGIES:
        result = live_results.get(tag)
        if result is not None:
            projections.append(
                live_projection(tag, product.price, result, portfolio_ids.get(tag))
            )
        else:
            projections.append(fallback_projection(tag, product.price))

    source = overall_source([p.source for p in projections])
    if source == OverallSource.FALLBACK:
        explanation = suggestion.explanation_text or fallback_suggestion(
            product.category, product.name, product.brand, product.price
        ).explanation_text
    else:
        explanation = (
            f"Instead of spending ${product.price:,.2f} on this item, "
            f"see how investing that money could grow:"
        )

    return Recommendation(
        product=product,
        tickers=suggestion.tickers,
        portfolios=projections,
        educational_text=suggestion.educational_text,
        explanation_text=explanation,
        overall_source=source,
        suggestion_source=suggestion.source,
    )


def fallback_recommendation(product: ProductDescriptor) -> Recommendation:
    """A complete recommendation built with no network access at all."""
    suggestion = fallback_suggestion(
        product.category, product.name, product.brand, product.price
    )
    return merge_recommendation(product, {}, suggestion)


def _loop_is_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


# ── Orchestrator ──────────────────────────────────────────────────────────────

class RecommendationOrchestrator:
    """Turns a product descriptor into a recommendation; never raises.

    One instance serves every request of a process: it owns the credential
    store and the session bootstrapper (whose in-flight bootstrap is shared
    across requests). HTTP clients are opened per request.

    Args:
        config:    AppConfig for this process.
        store:     Credential store override (defaults to ``config.database``).
        transport: Optional httpx transport for both upstream clients
                   (tests pass an ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: AppConfig,
        store: Optional[CredentialStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self.store = store or CredentialStore(
            config.database.db_path,
            wal_mode=config.database.wal_mode,
            busy_timeout_ms=config.database.busy_timeout_ms,
        )
        self.bootstrapper = SessionBootstrapper(self.store, config.finance)
        self._transport = transport

    # ── Public entry points ───────────────────────────────────────────────────

    def get_recommendation(
        self,
        descriptor: DescriptorInput,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Recommendation:
        """Synchronous entry point. Always returns a complete recommendation."""
        recommendation, _ = self.recommend_with_trace(descriptor, cancel_token)
        return recommendation

    def recommend_with_trace(
        self,
        descriptor: DescriptorInput,
        cancel_token: Optional[CancellationToken] = None,
    ) -> tuple[Recommendation, RequestTrace]:
        """Like ``get_recommendation()`` but also returns the request trace."""
        product = clean_descriptor(descriptor, self.config.recommendation.default_price)
        trace = RequestTrace()
        if _loop_is_running():
            logger.error(
                "[%s] Synchronous recommendation requested from a running event loop; "
                "await arecommend() instead.", trace.request_id,
            )
            trace.record_error("orchestrator", "called from a running event loop; use arecommend()")
            trace.enter(OrchestratorState.FALLBACK_ONLY)
            recommendation = fallback_recommendation(product)
        else:
            try:
                recommendation = asyncio.run(self._run(product, cancel_token, trace))
            except Exception as exc:
                trace.record_error("orchestrator", exc)
                trace.enter(OrchestratorState.FALLBACK_ONLY)
                recommendation = fallback_recommendation(product)
        self._finish(trace, recommendation, cancel_token)
        return recommendation, trace

    async def arecommend(
        self,
        descriptor: DescriptorInput,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Recommendation:
        """Async entry point for callers already inside an event loop."""
        product = clean_descriptor(descriptor, self.config.recommendation.default_price)
        trace = RequestTrace()
        try:
            recommendation = await self._run(product, cancel_token, trace)
        except Exception as exc:
            trace.record_error("orchestrator", exc)
            trace.enter(OrchestratorState.FALLBACK_ONLY)
            recommendation = fallback_recommendation(product)
        self._finish(trace, recommendation, cancel_token)
        return recommendation

    # ── Flow ──────────────────────────────────────────────────────────────────

    async def _run(
        self,
        product: ProductDescriptor,
        cancel_token: Optional[CancellationToken],
        trace: RequestTrace,
    ) -> Recommendation:
        """Run the flow under the request budget, retrying session failures."""
        budget = self.config.recommendation.request_budget_s
        attempts = 1 + self.config.recommendation.flow_retries
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget

        for attempt in range(1, attempts + 1):
            if attempt > 1 and is_cancelled(cancel_token):
                logger.info("[%s] Cancelled; not retrying.", trace.request_id)
                break
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            trace.attempts = attempt
            try:
                return await asyncio.wait_for(
                    self._flow(product, cancel_token, trace), timeout=remaining
                )
            except SessionError as exc:
                trace.record_error("session", exc)
            except asyncio.TimeoutError:
                trace.record_error("flow", f"request budget of {budget:.1f}s exhausted")
                break
            except Exception as exc:
                logger.exception("[%s] Unexpected failure in recommendation flow", trace.request_id)
                trace.record_error("flow", exc)

        trace.enter(OrchestratorState.FALLBACK_ONLY)
        return fallback_recommendation(product)

    async def _flow(
        self,
        product: ProductDescriptor,
        cancel_token: Optional[CancellationToken],
        trace: RequestTrace,
    ) -> Recommendation:
        cfg = self.config
        async with self._client(cfg.finance.base_url, cfg.finance.timeout_s) as finance_http, \
                   self._client(None, cfg.textgen.timeout_s) as textgen_http:
            api = FinanceApiClient(finance_http, cfg.finance.simulation_limit_marker)

            try:
                session = await self.bootstrapper.ensure_session(api)
            except SessionError:
                trace.enter(OrchestratorState.SESSION_FAILED)
                raise
            if not session.is_usable:
                trace.enter(OrchestratorState.SESSION_FAILED)
                raise SessionError("Session is missing a token or account id")
            trace.enter(OrchestratorState.SESSION_READY)

            suggester = StockSuggestionClient(
                TextGenerationClient(textgen_http, cfg.textgen), cfg.textgen
            )
            suggestion_task = asyncio.create_task(
                suggester.suggest_stocks(product, cancel_token)
            )
            try:
                live_results, portfolio_ids = await self._simulate_strategies(
                    api, session, product, cancel_token, trace
                )
                suggestion = await suggestion_task
            finally:
                if not suggestion_task.done():
                    suggestion_task.cancel()
            trace.enter(OrchestratorState.SUGGESTIONS_READY)

        recommendation = merge_recommendation(product, live_results, suggestion, portfolio_ids)
        trace.enter(OrchestratorState.MERGED)
        return recommendation

    async def _simulate_strategies(
        self,
        api: FinanceApiClient,
        session: Credentials,
        product: ProductDescriptor,
        cancel_token: Optional[CancellationToken],
        trace: RequestTrace,
    ) -> tuple[dict[StrategyTag, SimulationResult], dict[StrategyTag, str]]:
        """Steps 3–4: prepare portfolios, simulate once, match by strategy.

        Returns:
            (strategy → matched result, strategy → portfolio id). Strategies
            missing from the first mapping fall back.
        """
        finance = self.config.finance
        portfolios = PortfolioLifecycleClient(api, finance, cancel_token)

        trace.enter(OrchestratorState.PORTFOLIOS_REQUESTED)
        prepared = await portfolios.prepare_portfolios(session, DEFAULT_STRATEGIES, product.price)

        ready: dict[StrategyTag, str] = {}
        for tag, outcome in prepared.items():
            if isinstance(outcome, Portfolio):
                ready[tag] = outcome.id
            else:
                trace.record_error(f"portfolio[{tag}]", outcome)

        if not ready:
            trace.enter(OrchestratorState.SIM_FAILED)
            return {}, ready
        if is_cancelled(cancel_token):
            trace.record_error("simulate", "request cancelled before simulation")
            trace.enter(OrchestratorState.SIM_FAILED)
            return {}, ready

        months = finance.simulation_months
        budget_left = await asyncio.to_thread(
            self.store.simulation_budget_left, session.account_id, months, finance.months_ceiling
        )
        if not budget_left:
            trace.record_error(
                "simulate", f"months ceiling exhausted for account {session.account_id}"
            )
            trace.enter(OrchestratorState.SIM_FAILED)
            return {}, ready

        try:
            results = await portfolios.simulate(session, months)
        except SimulationLimitReached as exc:
            await asyncio.to_thread(self.store.mark_simulation_exhausted, session.account_id)
            trace.record_error("simulate", exc)
            trace.enter(OrchestratorState.SIM_FAILED)
            return {}, ready
        except PortfolioError as exc:
            trace.record_error("simulate", exc)
            trace.enter(OrchestratorState.SIM_FAILED)
            return {}, ready

        await asyncio.to_thread(self.store.record_simulation, session.account_id, months)
        trace.enter(OrchestratorState.SIMULATED)

        matched = match_results(results, ready)
        for tag in ready:
            if tag not in matched:
                trace.record_error(f"simulate[{tag}]", "no matching simulation result")
        return matched, ready

    # ── Internals ─────────────────────────────────────────────────────────────

    def _client(self, base_url: Optional[str], timeout_s: float) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(timeout_s),
            "transport": self._transport,
        }
        if base_url:
            kwargs["base_url"] = base_url
        return httpx.AsyncClient(**kwargs)

    def _finish(
        self,
        trace: RequestTrace,
        recommendation: Recommendation,
        cancel_token: Optional[CancellationToken],
    ) -> None:
        trace.finished_at = utcnow()
        trace.cancelled = is_cancelled(cancel_token)
        elapsed = (trace.finished_at - trace.started_at).total_seconds()
        logger.info(
            "[%s] Recommendation for %r: overall=%s suggestion=%s tickers=%s "
            "(%d attempt(s), %d degraded step(s), %.2fs)",
            trace.request_id,
            recommendation.product.name,
            recommendation.overall_source,
            recommendation.suggestion_source,
            ",".join(recommendation.tickers),
            trace.attempts,
            len(trace.errors),
            elapsed,
        )
