"""
Session bootstrap: make sure a usable (token, account_id) pair exists.

Flow
----
  1. Stored pair usable                  → return it, no network.
  2. No token                            → register a team, store the token.
  3. Token but no account                → create an account, store its id.
       409 Conflict on creation          → list accounts, adopt the first id.

Concurrency
-----------
Overlapping first calls must not register two teams. The first caller to find
the store incomplete becomes the *owner* and publishes a shared
``concurrent.futures.Future``; every other caller awaits that same future
instead of re-entering the flow. A plain ``Future`` (not an asyncio one) is
used because each recommendation runs under its own ``asyncio.run`` loop,
possibly on a different thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Optional

from stockswap.clients.finance_client import FinanceApiClient
from stockswap.config import FinanceApiConfig
from stockswap.db.repositories.credential_repo import CredentialStore
from stockswap.errors import (
    AccountCreationFailed,
    RegistrationFailed,
    SessionError,
    TransportError,
)
from stockswap.models.session import Credentials
from stockswap.utils.time_utils import unique_suffix

logger = logging.getLogger(__name__)


class SessionBootstrapper:
    """Idempotent, concurrency-safe session bootstrap.

    One instance is shared by every request of a process (it owns the
    in-flight future); the ``FinanceApiClient`` is per request.

    Args:
        store: Persistent credential store.
        config: Finance API settings (naming, starting balance).
    """

    def __init__(self, store: CredentialStore, config: FinanceApiConfig) -> None:
        self.store = store
        self.config = config
        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None

    async def ensure_session(self, api: FinanceApiClient) -> Credentials:
        """Return usable credentials, bootstrapping them at most once at a time.

        Args:
            api: Finance API client bound to the caller's event loop.

        Returns:
            ``Credentials`` with both token and account id.

        Raises:
            SessionError: Registration or account creation failed (timeouts
                included). Concurrent waiters receive the owner's error.
        """
        creds = await asyncio.to_thread(self.store.load)
        if creds.is_usable:
            return creds

        with self._lock:
            shared = self._inflight
            is_owner = shared is None
            if is_owner:
                shared = Future()
                self._inflight = shared

        if not is_owner:
            logger.debug("Session bootstrap already in flight; waiting for it.")
            # shield: a waiter timing out must not cancel the owner's future.
            return await asyncio.shield(asyncio.wrap_future(shared))

        try:
            creds = await self._bootstrap(api)
        except BaseException as exc:
            if isinstance(exc, SessionError):
                shared.set_exception(exc)
            else:
                shared.set_exception(SessionError(f"Session bootstrap aborted: {exc!r}"))
            raise
        else:
            shared.set_result(creds)
            return creds
        finally:
            with self._lock:
                self._inflight = None

    async def _bootstrap(self, api: FinanceApiClient) -> Credentials:
        # Another owner may have completed between our first load and the lock.
        creds = await asyncio.to_thread(self.store.load)
        if creds.is_usable:
            return creds

        token = creds.token
        if not token:
            token = await self._register(api)
            await asyncio.to_thread(self.store.save_token, token)

        account_id = await self._create_or_adopt_account(api, token)
        await asyncio.to_thread(self.store.save_account_id, account_id)
        logger.info("Session ready (account %s).", account_id)
        return Credentials(token=token, account_id=account_id)

    async def _register(self, api: FinanceApiClient) -> str:
        suffix = unique_suffix()
        team_name = f"{self.config.team_prefix}_{suffix}"
        contact = f"team{suffix}@{self.config.contact_domain}"
        logger.info("Registering team %s", team_name)
        try:
            return await api.register_team(team_name, contact)
        except TransportError as exc:
            raise RegistrationFailed(f"Team registration failed: {exc}") from exc

    async def _create_or_adopt_account(self, api: FinanceApiClient, token: str) -> str:
        contact = f"user{unique_suffix()}@{self.config.contact_domain}"
        try:
            return await api.create_account(
                token, self.config.account_name, contact, self.config.starting_balance
            )
        except AccountCreationFailed as exc:
            if exc.status_code != 409:
                raise
            logger.info("Account already exists (409); adopting an existing account.")
        except TransportError as exc:
            raise AccountCreationFailed(f"Account creation failed: {exc}") from exc

        try:
            account_ids = await api.list_accounts(token)
        except TransportError as exc:
            raise AccountCreationFailed(f"Listing accounts failed: {exc}") from exc
        if not account_ids:
            raise AccountCreationFailed(
                "Account creation conflicted but no existing account was listed",
                status_code=409,
            )
        return account_ids[0]
