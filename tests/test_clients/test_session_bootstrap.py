"""
Tests for SessionBootstrapper — registration, account recovery, concurrency.

What we test
------------
1. Empty store: registers a team, creates an account, persists both.
2. Usable stored pair: no network calls at all.
3. Stored token without account: only the account is created.
4. 409 on account creation: first listed account is adopted.
5. 409 with an empty account list, other non-2xx, missing token: SessionError.
6. Overlapping first calls (separate threads and loops) register once.
"""

from __future__ import annotations

import asyncio
import threading

import httpx
import pytest

from stockswap.clients.finance_client import FinanceApiClient
from stockswap.clients.session import SessionBootstrapper
from stockswap.errors import AccountCreationFailed, RegistrationFailed, SessionError
from stockswap.models.session import Credentials

FINANCE_URL = "https://finance.test"


def _ensure(bootstrapper: SessionBootstrapper, transport: httpx.MockTransport) -> Credentials:
    async def main() -> Credentials:
        async with httpx.AsyncClient(base_url=FINANCE_URL, transport=transport) as http:
            return await bootstrapper.ensure_session(FinanceApiClient(http))
    return asyncio.run(main())


@pytest.fixture
def bootstrapper(app_config, credential_store) -> SessionBootstrapper:
    return SessionBootstrapper(credential_store, app_config.finance)


class TestBootstrapFlow:
    def test_empty_store_registers_and_creates_account(
        self, bootstrapper, transport, fake_finance, credential_store
    ):
        creds = _ensure(bootstrapper, transport)

        assert creds.is_usable
        assert creds.token.startswith("tok-StockSwap_")
        assert creds.account_id == "acct-1"
        assert credential_store.load() == creds
        assert fake_finance.count("POST", "/teams/register") == 1
        assert fake_finance.count("POST", "/clients") == 1

    def test_usable_store_makes_no_calls(self, bootstrapper, transport, fake_finance, credential_store):
        credential_store.save_token("tok-stored")
        credential_store.save_account_id("acct-stored")

        creds = _ensure(bootstrapper, transport)

        assert creds == Credentials(token="tok-stored", account_id="acct-stored")
        assert fake_finance.calls == []

    def test_token_without_account_creates_account_only(
        self, bootstrapper, transport, fake_finance, credential_store
    ):
        credential_store.save_token("tok-stored")

        creds = _ensure(bootstrapper, transport)

        assert creds == Credentials(token="tok-stored", account_id="acct-1")
        assert fake_finance.count("POST", "/teams/register") == 0

    def test_conflict_adopts_first_listed_account(self, bootstrapper, transport, fake_finance):
        fake_finance.account_status = 409
        fake_finance.existing_accounts = ["acct-a", "acct-b"]

        creds = _ensure(bootstrapper, transport)

        assert creds.account_id == "acct-a"
        assert fake_finance.count("GET", "/clients") == 1


class TestBootstrapFailures:
    def test_registration_error_raises(self, bootstrapper, transport, fake_finance, credential_store):
        fake_finance.register_status = 503

        with pytest.raises(RegistrationFailed) as exc_info:
            _ensure(bootstrapper, transport)

        assert exc_info.value.status_code == 503
        assert credential_store.load() == Credentials()

    def test_registration_without_token_raises(self, bootstrapper, credential_store):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True}))
        with pytest.raises(RegistrationFailed):
            _ensure(bootstrapper, transport)

    def test_conflict_with_no_accounts_raises(self, bootstrapper, transport, fake_finance):
        fake_finance.account_status = 409
        fake_finance.existing_accounts = []

        with pytest.raises(AccountCreationFailed):
            _ensure(bootstrapper, transport)

    def test_other_account_error_raises_and_keeps_token(
        self, bootstrapper, transport, fake_finance, credential_store
    ):
        fake_finance.account_status = 500

        with pytest.raises(AccountCreationFailed) as exc_info:
            _ensure(bootstrapper, transport)

        assert exc_info.value.status_code == 500
        stored = credential_store.load()
        assert stored.token is not None
        assert stored.account_id is None
        assert not stored.is_usable

    def test_transport_error_becomes_session_error(self, bootstrapper):
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(SessionError):
            _ensure(bootstrapper, httpx.MockTransport(timeout))


class TestConcurrentBootstrap:
    def test_overlapping_first_calls_register_once(self, bootstrapper, transport, fake_finance):
        fake_finance.register_delay_s = 0.3
        results: list[Credentials] = []
        errors: list[BaseException] = []

        def worker() -> None:
            try:
                results.append(_ensure(bootstrapper, transport))
            except BaseException as exc:  # collected for the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        assert len(results) == 3
        assert len({(c.token, c.account_id) for c in results}) == 1
        assert fake_finance.count("POST", "/teams/register") == 1
        assert fake_finance.count("POST", "/clients") == 1

    def test_waiters_share_owner_failure(self, bootstrapper, transport, fake_finance):
        fake_finance.register_delay_s = 0.3
        fake_finance.register_status = 500
        errors: list[BaseException] = []

        def worker() -> None:
            try:
                _ensure(bootstrapper, transport)
            except SessionError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(errors) == 2
        assert fake_finance.count("POST", "/teams/register") == 1
