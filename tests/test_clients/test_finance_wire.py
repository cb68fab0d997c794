"""Tests for FinanceApiClient request shapes and tolerant response parsing."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from stockswap.clients.finance_client import FinanceApiClient
from stockswap.errors import AccountCreationFailed, TransportError
from stockswap.models.session import Credentials
from stockswap.taxonomy.strategy_taxonomy import StrategyTag

SESSION = Credentials(token="tok-1", account_id="acct-9")


def _call(handler, action, base_url="https://finance.test/dev"):
    async def main():
        async with httpx.AsyncClient(
            base_url=base_url, transport=httpx.MockTransport(handler)
        ) as http:
            return await action(FinanceApiClient(http))

    return asyncio.run(main())


class TestRequests:
    def test_base_path_is_preserved_and_bearer_sent(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "pf-1", "type": "aggressive_growth"})

        portfolio = _call(handler, lambda api: api.create_portfolio(SESSION, StrategyTag.AGGRESSIVE, 42.5))

        assert seen["path"] == "/dev/clients/acct-9/portfolios"
        assert seen["auth"] == "Bearer tok-1"
        assert seen["body"] == {"type": "aggressive_growth", "initialAmount": 42.5}
        assert portfolio.strategy_tag == StrategyTag.AGGRESSIVE
        assert portfolio.initial_amount == 42.5

    def test_registration_sends_no_bearer(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"jwtToken": "abc"})

        token = _call(handler, lambda api: api.register_team("StockSwap_1", "team1@x.com"))

        assert token == "abc"
        assert seen["auth"] is None
        assert seen["body"] == {"team_name": "StockSwap_1", "contact_email": "team1@x.com"}

    def test_conflict_carries_status(self):
        with pytest.raises(AccountCreationFailed) as exc_info:
            _call(lambda r: httpx.Response(409, json={"error": "exists"}), lambda api: api.create_account("tok", "Student User", "u@x.com", 100000))
        assert exc_info.value.status_code == 409

    def test_timeout_becomes_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        with pytest.raises(TransportError) as exc_info:
            _call(handler, lambda api: api.list_portfolios(SESSION))
        assert exc_info.value.operation == "list_portfolios"

    def test_decoding_error_becomes_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("bad gzip", request=request)

        with pytest.raises(TransportError) as exc_info:
            _call(handler, lambda api: api.simulate(SESSION, 6))
        assert exc_info.value.operation == "simulate"


class TestTolerantParsing:
    def test_portfolio_list_mixed_casing(self):
        rows = [
            {"id": "p1", "type": "conservative", "initialAmount": 10, "current_value": 11},
            {"portfolioId": "p2", "strategy": "aggressive_growth", "initial_amount": "20.5"},
            {"id": "p3", "type": "crypto_moonshot", "initialAmount": 5},
            {"id": "p4", "type": "balanced"},
        ]
        portfolios = _call(lambda r: httpx.Response(200, json=rows), lambda api: api.list_portfolios(SESSION))

        assert [(p.id, p.strategy_tag, p.initial_amount) for p in portfolios] == [
            ("p1", StrategyTag.CONSERVATIVE, 10.0),
            ("p2", StrategyTag.AGGRESSIVE, 20.5),
        ]
        assert portfolios[0].current_value == 11.0

    def test_simulation_results_camel_and_snake(self):
        body = {"results": [
            {"strategy": "conservative", "projected_value": 103.2, "months_simulated": 6,
             "percentage_return": 3.2, "portfolio_id": 7},
            {"strategyName": "aggressive_growth", "projectedValue": 110, "monthsSimulated": 6,
             "growthTrend": [{"month": 1, "value": 101}, {"month": 2, "value": 104.5}]},
            {"strategy": "balanced"},
        ]}
        results = _call(lambda r: httpx.Response(200, json=body), lambda api: api.simulate(SESSION, 6))

        assert [r.strategy_tag for r in results] == [StrategyTag.CONSERVATIVE, StrategyTag.AGGRESSIVE]
        assert results[0].portfolio_id == "7"
        assert results[0].percentage_return == 3.2
        assert results[1].growth_trend == [101.0, 104.5]
        assert results[1].percentage_return is None

    def test_delete_404_is_success(self):
        _call(lambda r: httpx.Response(404), lambda api: api.delete_portfolio(SESSION, "gone"))

    def test_list_accounts(self):
        body = [{"id": "a1"}, {"name": "no id"}, {"id": "a2"}]
        ids = _call(lambda r: httpx.Response(200, json=body), lambda api: api.list_accounts("tok"))
        assert ids == ["a1", "a2"]
