from __future__ import annotations

import base64
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """One upstream metrics endpoint, immutable after startup."""

    name: str
    base_url: str  # no trailing slash
    prefix: str | None = None
    auth_header: str | None = None  # full Authorization header value

    @staticmethod
    def new(
        *,
        name: str,
        url: str,
        prefix: str | None = None,
        username: str | None = None,
        password: str | None = None,
        bearer: str | None = None,
    ) -> ServerConfig:
        # Basic wins over Bearer when both are configured
        auth_header: str | None = None
        if username is not None and password is not None:
            token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
            auth_header = f"Basic {token}"
        elif bearer:
            auth_header = f"Bearer {bearer}"

        return ServerConfig(
            name=name,
            base_url=url.rstrip("/"),
            prefix=prefix or None,
            auth_header=auth_header,
        )

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{path}"
