"""
Portfolio-simulation API client — the wire layer.

API:   ``config.finance.base_url`` (a fixed third-party REST service)

Endpoints::

    POST   /teams/register                     {team_name, contact_email} → {jwtToken}
    POST   /clients                            {name, email, cash}        → {id}   | 409
    GET    /clients                                                       → [{id, ...}]
    POST   /clients/{account}/portfolios       {type, initialAmount}      → {id, type, ...}
    GET    /clients/{account}/portfolios                                  → [{id, type, initialAmount, current_value}]
    DELETE /clients/{account}/portfolios/{id}                             → 204
    POST   /client/{account}/simulate          {months}                   → {results: [...]}

Every call but registration carries ``Authorization: Bearer <token>``.

Responsibilities:
  - Translate internal ``StrategyTag`` ↔ upstream strategy names (via the
    taxonomy lookup only).
  - Parse upstream's inconsistent field casing (``projected_value`` vs
    ``projectedValue``) into typed models.
  - Turn any ``httpx.HTTPError`` (a corrupt gzip body included) into
    ``TransportError`` and non-2xx responses into the call site's
    specific error type.

No retries and no policy here; those live in the bootstrapper and the
portfolio lifecycle client.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional

import httpx

from stockswap.errors import (
    AccountCreationFailed,
    PortfolioCreationFailed,
    PortfolioError,
    PortfolioListFailed,
    RegistrationFailed,
    SimulationFailed,
    SimulationLimitReached,
    TransportError,
)
from stockswap.models.portfolio import Portfolio, SimulationResult
from stockswap.models.session import Credentials
from stockswap.taxonomy.strategy_taxonomy import (
    StrategyTag,
    from_upstream_strategy,
    to_upstream_strategy,
)

logger = logging.getLogger(__name__)


class FinanceApiClient:
    """Thin typed wrapper over an ``httpx.AsyncClient`` bound to the finance API.

    Usage::

        async with httpx.AsyncClient(base_url=cfg.finance.base_url,
                                     timeout=cfg.finance.timeout_s) as http:
            api = FinanceApiClient(http, simulation_limit_marker=cfg.finance.simulation_limit_marker)
            token = await api.register_team("StockSwap_1761", "team1761@stockswap.com")

    Args:
        http: Async HTTP client whose ``base_url`` points at the finance API
            and whose timeout is the per-call budget.
        simulation_limit_marker: Substring of a 400 body that means the
            per-account months ceiling is exhausted.
    """

    ENDPOINTS: ClassVar[dict[str, str]] = {
        "register":   "/teams/register",
        "accounts":   "/clients",
        "portfolios": "/clients/{account_id}/portfolios",
        "portfolio":  "/clients/{account_id}/portfolios/{portfolio_id}",
        "simulate":   "/client/{account_id}/simulate",
    }

    def __init__(
        self,
        http: httpx.AsyncClient,
        simulation_limit_marker: str = "Cannot simulate for more than 60 months",
    ) -> None:
        self.http = http
        self.simulation_limit_marker = simulation_limit_marker

    # ── Session endpoints ─────────────────────────────────────────────────────

    async def register_team(self, team_name: str, contact_email: str) -> str:
        """Register a team and return its bearer token.

        Raises:
            RegistrationFailed: Non-2xx status or no token in the body.
            TransportError: Any httpx request failure.
        """
        resp = await self._send(
            "register_team", "POST", self.ENDPOINTS["register"],
            json={"team_name": team_name, "contact_email": contact_email},
        )
        if resp.is_error:
            raise RegistrationFailed(
                "Team registration failed", status_code=resp.status_code, body=resp.text
            )
        data = _json_or_none(resp)
        token = _first(data, "jwtToken", "token") if isinstance(data, dict) else None
        if not token:
            raise RegistrationFailed(
                "No token in registration response", status_code=resp.status_code
            )
        return str(token)

    async def create_account(
        self,
        token: str,
        name: str,
        contact_email: str,
        starting_balance: float,
    ) -> str:
        """Create an account (upstream "client") and return its id.

        Raises:
            AccountCreationFailed: Non-2xx (``status_code`` 409 means the
                contact already exists) or no id in the body.
            TransportError: Any httpx request failure.
        """
        resp = await self._send(
            "create_account", "POST", self.ENDPOINTS["accounts"], token=token,
            json={"name": name, "email": contact_email, "cash": starting_balance},
        )
        if resp.is_error:
            raise AccountCreationFailed(
                "Account creation failed", status_code=resp.status_code, body=resp.text
            )
        data = _json_or_none(resp)
        account_id = _first(data, "id", "clientId", "client_id") if isinstance(data, dict) else None
        if not account_id:
            raise AccountCreationFailed(
                "No account id in creation response", status_code=resp.status_code
            )
        return str(account_id)

    async def list_accounts(self, token: str) -> list[str]:
        """Return the ids of all accounts visible to ``token``.

        Raises:
            AccountCreationFailed: Non-2xx (only used during account recovery).
            TransportError: Any httpx request failure.
        """
        resp = await self._send(
            "list_accounts", "GET", self.ENDPOINTS["accounts"], token=token
        )
        if resp.is_error:
            raise AccountCreationFailed(
                "Could not list existing accounts", status_code=resp.status_code, body=resp.text
            )
        data = _json_or_none(resp)
        rows = data if isinstance(data, list) else []
        return [str(r["id"]) for r in rows if isinstance(r, dict) and r.get("id")]

    # ── Portfolio endpoints ───────────────────────────────────────────────────

    async def create_portfolio(
        self,
        session: Credentials,
        strategy_tag: StrategyTag,
        amount: float,
    ) -> Portfolio:
        """Create one portfolio for ``strategy_tag`` funded with ``amount``.

        Raises:
            PortfolioCreationFailed: Non-2xx or an unparseable body.
            TransportError: Any httpx request failure.
        """
        tag = StrategyTag(strategy_tag)
        path = self.ENDPOINTS["portfolios"].format(account_id=session.account_id)
        resp = await self._send(
            "create_portfolio", "POST", path, token=session.token,
            json={"type": to_upstream_strategy(tag), "initialAmount": amount},
        )
        if resp.is_error:
            raise PortfolioCreationFailed(
                f"Portfolio creation failed for {tag}",
                status_code=resp.status_code, body=resp.text, strategy_tag=tag,
            )
        data = _json_or_none(resp)
        portfolio_id = _first(data, "id", "portfolioId", "portfolio_id") if isinstance(data, dict) else None
        if not portfolio_id:
            raise PortfolioCreationFailed(
                f"No portfolio id in creation response for {tag}",
                status_code=resp.status_code, strategy_tag=tag,
            )
        # Upstream echoes inconsistently; trust what we asked for.
        return Portfolio(
            id=str(portfolio_id),
            strategy_tag=tag,
            initial_amount=float(_first(data, "initialAmount", "initial_amount") or amount),
            current_value=_float_or_none(_first(data, "current_value", "currentValue")),
        )

    async def list_portfolios(self, session: Credentials) -> list[Portfolio]:
        """List the account's portfolios (unknown strategies are skipped).

        Raises:
            PortfolioListFailed: Non-2xx status.
            TransportError: Any httpx request failure.
        """
        path = self.ENDPOINTS["portfolios"].format(account_id=session.account_id)
        resp = await self._send("list_portfolios", "GET", path, token=session.token)
        if resp.is_error:
            raise PortfolioListFailed(
                "Listing portfolios failed", status_code=resp.status_code, body=resp.text
            )
        data = _json_or_none(resp)
        if isinstance(data, dict):
            rows = data.get("portfolios") or []
        elif isinstance(data, list):
            rows = data
        else:
            rows = []
        portfolios: list[Portfolio] = []
        for row in rows:
            portfolio = _parse_portfolio(row)
            if portfolio is not None:
                portfolios.append(portfolio)
        return portfolios

    async def delete_portfolio(self, session: Credentials, portfolio_id: str) -> None:
        """Delete one portfolio. 404 counts as already deleted.

        Raises:
            PortfolioError: Any other non-2xx status.
            TransportError: Any httpx request failure.
        """
        path = self.ENDPOINTS["portfolio"].format(
            account_id=session.account_id, portfolio_id=portfolio_id
        )
        resp = await self._send("delete_portfolio", "DELETE", path, token=session.token)
        if resp.status_code == 404:
            logger.debug("Portfolio %s already gone.", portfolio_id)
            return
        if resp.is_error:
            raise PortfolioError(
                f"Deleting portfolio {portfolio_id} failed",
                status_code=resp.status_code, body=resp.text,
            )

    async def simulate(self, session: Credentials, months: int) -> list[SimulationResult]:
        """Simulate every portfolio on the account for ``months`` months.

        Results with unknown strategies or no projected value are dropped.

        Raises:
            SimulationLimitReached: 400 whose body carries the ceiling marker.
            SimulationFailed: Any other non-2xx status.
            TransportError: Any httpx request failure.
        """
        path = self.ENDPOINTS["simulate"].format(account_id=session.account_id)
        resp = await self._send(
            "simulate", "POST", path, token=session.token, json={"months": months}
        )
        if resp.status_code == 400 and self.simulation_limit_marker in resp.text:
            raise SimulationLimitReached(
                "Simulation months ceiling reached", status_code=400, body=resp.text
            )
        if resp.is_error:
            raise SimulationFailed(
                "Simulation failed", status_code=resp.status_code, body=resp.text
            )
        data = _json_or_none(resp)
        if isinstance(data, dict):
            rows = data.get("results") or []
        elif isinstance(data, list):
            rows = data
        else:
            raise SimulationFailed("Unparseable simulation response", status_code=resp.status_code)

        results: list[SimulationResult] = []
        for row in rows:
            result = _parse_simulation_result(row, months)
            if result is not None:
                results.append(result)
        return results

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            resp = await self.http.request(method, path, headers=headers, json=json)
        except httpx.HTTPError as exc:
            raise TransportError(operation, exc) from exc
        logger.debug("%s %s -> %d", method, path, resp.status_code)
        return resp


# ── Response parsers ──────────────────────────────────────────────────────────

def _json_or_none(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _first(data: Any, *keys: str) -> Any:
    """First present, non-None value among ``keys`` in a dict."""
    if not isinstance(data, dict):
        return None
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _parse_portfolio(row: Any) -> Optional[Portfolio]:
    tag = from_upstream_strategy(_first(row, "type", "strategy", "strategyName"))
    portfolio_id = _first(row, "id", "portfolioId", "portfolio_id")
    amount = _float_or_none(_first(row, "initialAmount", "initial_amount"))
    if tag is None or portfolio_id is None or amount is None:
        logger.debug("Skipping unrecognised portfolio record: %r", row)
        return None
    return Portfolio(
        id=str(portfolio_id),
        strategy_tag=tag,
        initial_amount=amount,
        current_value=_float_or_none(_first(row, "current_value", "currentValue")),
    )


def _parse_simulation_result(row: Any, requested_months: int) -> Optional[SimulationResult]:
    tag = from_upstream_strategy(_first(row, "strategy", "strategyName", "type"))
    projected = _float_or_none(_first(row, "projectedValue", "projected_value"))
    if tag is None or projected is None:
        logger.debug("Skipping unrecognised simulation record: %r", row)
        return None
    months = _first(row, "monthsSimulated", "months_simulated")
    trend = _first(row, "growthTrend", "growth_trend")
    portfolio_id = _first(row, "portfolioId", "portfolio_id")
    return SimulationResult(
        strategy_tag=tag,
        projected_value=projected,
        months_simulated=int(months) if months is not None else requested_months,
        percentage_return=_float_or_none(_first(row, "percentageReturn", "percentage_return")),
        growth_trend=_parse_trend(trend),
        portfolio_id=str(portfolio_id) if portfolio_id is not None else None,
    )


def _parse_trend(trend: Any) -> Optional[list[float]]:
    if not isinstance(trend, list):
        return None
    values: list[float] = []
    for point in trend:
        # Trend points arrive either as bare numbers or {"value": n, ...}.
        raw = point.get("value") if isinstance(point, dict) else point
        value = _float_or_none(raw)
        if value is not None:
            values.append(value)
    return values or None
