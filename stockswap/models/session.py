"""
Session credentials for the portfolio-simulation API.

``Credentials`` mirrors what the credential store holds: either field may be
absent. A request may only talk to the portfolio API when ``is_usable`` —
both a token and an account id issued under that token.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class Credentials(BaseModel):
    """Stored (token, account_id) pair.

    Attributes:
        token: Bearer token from team registration; ``None`` before registration.
        account_id: Upstream account (client) id created under ``token``.
    """

    model_config = ConfigDict(frozen=True)

    token: Optional[str] = None
    account_id: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        """True when both halves of the session are present."""
        return bool(self.token) and bool(self.account_id)

    def __repr__(self) -> str:
        # Never leak the token into logs or tracebacks.
        return (
            f"Credentials(token={'<set>' if self.token else None}, "
            f"account_id={self.account_id!r})"
        )

    __str__ = __repr__
