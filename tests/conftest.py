"""
Shared pytest fixtures for the StockSwap test suite.

Provides:
  - ``app_config``: An ``AppConfig`` pointing at a temp SQLite file and at
    fake upstream hosts, with backoffs and delete delays set to zero.
  - ``FakeFinanceApi`` / ``FakeTextGen``: stateful in-process stand-ins for
    the two upstream services, served through ``httpx.MockTransport``.
  - ``transport``: one MockTransport routing by host to both fakes.
  - ``orchestrator``: a ``RecommendationOrchestrator`` wired to the fakes.
"""

from __future__ import annotations

import json
import re
import threading
import time
from typing import Optional

import httpx
import pytest

from stockswap.config import (
    AppConfig,
    DatabaseConfig,
    FinanceApiConfig,
    LoggingConfig,
    RecommendationConfig,
    TextGenConfig,
)
from stockswap.db.repositories.credential_repo import CredentialStore
from stockswap.pipeline.orchestrator import RecommendationOrchestrator

FINANCE_HOST = "finance.test"
TEXTGEN_HOST = "textgen.test"

LIMIT_MESSAGE = "Cannot simulate for more than 60 months"

# Growth the fake simulator applies per upstream strategy name.
FAKE_GROWTH = {"conservative": 1.02, "balanced": 1.04, "aggressive_growth": 1.06}

_PORTFOLIOS_RE = re.compile(r"^/clients/([^/]+)/portfolios$")
_PORTFOLIO_RE = re.compile(r"^/clients/([^/]+)/portfolios/([^/]+)$")
_SIMULATE_RE = re.compile(r"^/client/([^/]+)/simulate$")


# ── Fake upstream services ────────────────────────────────────────────────────

class FakeFinanceApi:
    """In-memory portfolio-simulation API.

    Knobs (set before the request):
      register_status / register_delay_s  — team registration behaviour
      account_status                      — 201, or 409 to force list recovery
      existing_accounts                   — what GET /clients returns
      fail_create                         — upstream strategy names whose creation 500s
      delete_status                       — non-204 to fail DELETE (portfolio kept)
      simulate_status                     — non-200 to fail the batched call
      simulate_only                       — upstream names to include in results
      max_portfolios                      — upstream's own cap (400 beyond it)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str]] = []
        self.register_status = 200
        self.register_delay_s = 0.0
        self.account_status = 201
        self.existing_accounts: list[str] = ["acct-existing"]
        self.fail_create: set[str] = set()
        self.delete_status = 204
        self.simulate_status = 200
        self.simulate_only: Optional[set[str]] = None
        self.max_portfolios = 3
        self.portfolios: dict[str, list[dict]] = {}
        self.months_used: dict[str, int] = {}
        self._next_id = 0

    # ── Introspection ─────────────────────────────────────────────────────────

    def count(self, method: str, pattern: str) -> int:
        return sum(1 for m, p in self.calls if m == method and re.fullmatch(pattern, p))

    def seed_portfolio(self, account_id: str, upstream_type: str, amount: float) -> str:
        with self._lock:
            return self._add_portfolio(account_id, upstream_type, amount)["id"]

    # ── Handler ───────────────────────────────────────────────────────────────

    def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        body = json.loads(request.content) if request.content else {}
        with self._lock:
            self.calls.append((method, path))

        if path == "/teams/register" and method == "POST":
            if self.register_delay_s:
                time.sleep(self.register_delay_s)
            if self.register_status != 200:
                return httpx.Response(self.register_status, json={"error": "nope"})
            return httpx.Response(200, json={"jwtToken": f"tok-{body['team_name']}"})

        if path == "/clients" and method == "POST":
            if self.account_status == 201:
                return httpx.Response(201, json={"id": "acct-1", "name": body["name"]})
            return httpx.Response(self.account_status, json={"error": "Client already exists"})

        if path == "/clients" and method == "GET":
            return httpx.Response(200, json=[{"id": a} for a in self.existing_accounts])

        if m := _PORTFOLIOS_RE.match(path):
            return self._portfolios(method, m.group(1), body)

        if (m := _PORTFOLIO_RE.match(path)) and method == "DELETE":
            if self.delete_status != 204:
                return httpx.Response(self.delete_status, json={"error": "delete failed"})
            with self._lock:
                rows = self.portfolios.get(m.group(1), [])
                self.portfolios[m.group(1)] = [p for p in rows if p["id"] != m.group(2)]
            return httpx.Response(204)

        if (m := _SIMULATE_RE.match(path)) and method == "POST":
            return self._simulate(m.group(1), int(body["months"]))

        return httpx.Response(404, json={"error": f"no route {method} {path}"})

    def _portfolios(self, method: str, account_id: str, body: dict) -> httpx.Response:
        with self._lock:
            rows = self.portfolios.setdefault(account_id, [])
            if method == "GET":
                return httpx.Response(200, json=list(rows))
            if body["type"] in self.fail_create:
                return httpx.Response(500, json={"error": "boom"})
            if len(rows) >= self.max_portfolios:
                return httpx.Response(400, json={"error": "Maximum 3 portfolios per client"})
            row = self._add_portfolio(account_id, body["type"], body["initialAmount"])
        return httpx.Response(201, json={**row, "client_id": account_id})

    def _add_portfolio(self, account_id: str, upstream_type: str, amount: float) -> dict:
        self._next_id += 1
        row = {
            "id": f"pf-{self._next_id}",
            "type": upstream_type,
            "initialAmount": amount,
            "current_value": amount,
        }
        self.portfolios.setdefault(account_id, []).append(row)
        return row

    def _simulate(self, account_id: str, months: int) -> httpx.Response:
        with self._lock:
            if self.simulate_status != 200:
                return httpx.Response(self.simulate_status, json={"error": "simulation down"})
            used = self.months_used.get(account_id, 0)
            if used + months > 60:
                return httpx.Response(400, json={"error": LIMIT_MESSAGE})
            self.months_used[account_id] = used + months
            results = []
            for row in self.portfolios.get(account_id, []):
                if self.simulate_only is not None and row["type"] not in self.simulate_only:
                    continue
                projected = row["initialAmount"] * FAKE_GROWTH[row["type"]]
                results.append({
                    "strategy": row["type"],
                    "portfolio_id": row["id"],
                    "projected_value": projected,
                    "percentage_return": (FAKE_GROWTH[row["type"]] - 1) * 100,
                    "months_simulated": months,
                    "growth_trend": [row["initialAmount"], projected],
                })
        return httpx.Response(200, json={"results": results})


class FakeTextGen:
    """In-memory text-generation API.

    ``ticker_replies`` are served in order (the last one repeats);
    ``education_reply=None`` makes the blurb call fail with a 500.
    """

    def __init__(self) -> None:
        self.ticker_replies: list[str] = ["AAPL, MSFT, GOOGL"]
        self.education_reply: Optional[str] = "These companies sell the gadgets you love."
        self.ticker_calls = 0
        self.education_calls = 0
        self.payloads: list[dict] = []
        self._lock = threading.Lock()

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        with self._lock:
            self.payloads.append(payload)
            if payload["prompt"].startswith("Act as a financial advisor"):
                index = min(self.ticker_calls, len(self.ticker_replies) - 1)
                self.ticker_calls += 1
                text = self.ticker_replies[index]
            else:
                self.education_calls += 1
                text = self.education_reply
        if text is None:
            return httpx.Response(500, json={"message": "overloaded"})
        return httpx.Response(200, json={"generations": [{"text": text}]})


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """AppConfig wired to the fake hosts and a temp DB; no sleeps."""
    return AppConfig(
        database=DatabaseConfig(db_path=str(tmp_path / "stockswap.db")),
        finance=FinanceApiConfig(base_url=f"https://{FINANCE_HOST}", delete_delay_s=0.0),
        textgen=TextGenConfig(
            base_url=f"https://{TEXTGEN_HOST}",
            api_key="test-key",
            retry_backoff_s=0.0,
        ),
        recommendation=RecommendationConfig(request_budget_s=10.0),
        logging=LoggingConfig(log_file=""),
    )


@pytest.fixture
def fake_finance() -> FakeFinanceApi:
    return FakeFinanceApi()


@pytest.fixture
def fake_textgen() -> FakeTextGen:
    return FakeTextGen()


@pytest.fixture
def transport(fake_finance, fake_textgen) -> httpx.MockTransport:
    """MockTransport routing finance.test and textgen.test to the fakes."""

    def route(request: httpx.Request) -> httpx.Response:
        if request.url.host == FINANCE_HOST:
            return fake_finance.handle(request)
        if request.url.host == TEXTGEN_HOST:
            return fake_textgen.handle(request)
        raise httpx.ConnectError(f"unexpected host {request.url.host}", request=request)

    return httpx.MockTransport(route)


@pytest.fixture
def credential_store(app_config) -> CredentialStore:
    return CredentialStore(app_config.database.db_path, wal_mode=False)


@pytest.fixture
def orchestrator(app_config, credential_store, transport) -> RecommendationOrchestrator:
    return RecommendationOrchestrator(app_config, store=credential_store, transport=transport)
