"""
This module provides a bearer-token header source for event-stream subscriptions.
The token is resolved again before every connection attempt, so a provider callable
can refresh expired credentials between retries.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Optional

ENV_TOKEN = "FETCH_EVENT_SOURCE_TOKEN"


@dataclass(frozen=True, slots=True)
class BearerAuth:
    """
    Header source producing an `Authorization: Bearer <token>` header.
    Either a fixed `token` or a `token_provider` called on each attempt must be given.
    """

    token: Optional[str] = None
    token_provider: Optional[Callable[[], str]] = None

    def __post_init__(self) -> None:
        if not self.token and self.token_provider is None:
            raise ValueError("BearerAuth needs a token or a token_provider")

    def __call__(self) -> dict[str, str]:
        token = self.token_provider() if self.token_provider is not None else self.token
        if not token:
            raise ValueError("Token provider returned an empty token")
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def from_env_or_value(token: str | None) -> BearerAuth:
        """
        Create a BearerAuth instance from a provided value or environment variable.

        Args:
            token: Optional token string provided by the user.

        Returns:
            An initialized BearerAuth holding the token.

        Raises:
            ValueError: If no token is found in both the argument and environment.
        """
        value = token or os.getenv(ENV_TOKEN)

        if not value:
            raise ValueError(
                "Token missing. Define FETCH_EVENT_SOURCE_TOKEN in environment or pass token value"
            )
        return BearerAuth(token=value)
