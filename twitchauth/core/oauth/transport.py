"""Default header access for the shared API client.

The session manager only needs to set and clear a couple of default headers
on the client the rest of the application uses for API calls. This module
names that seam so a fake can be substituted in tests.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx


@runtime_checkable
class HeaderTransport(Protocol):
    """Mutable default headers of an HTTP client."""

    def set_header(self, name: str, value: str) -> None: ...

    def clear_header(self, name: str) -> None: ...

    def get_header(self, name: str) -> str | None: ...


class HttpxHeaderTransport:
    """HeaderTransport over an ``httpx.Client``'s default headers."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    def set_header(self, name: str, value: str) -> None:
        self._client.headers[name] = value

    def clear_header(self, name: str) -> None:
        # httpx.Headers is case-insensitive; pop is a no-op when absent
        self._client.headers.pop(name, None)

    def get_header(self, name: str) -> str | None:
        return self._client.headers.get(name)


class InMemoryHeaderTransport:
    """Plain dict-backed HeaderTransport, for callers without an httpx client."""

    def __init__(self, headers: dict[str, str] | None = None) -> None:
        self.headers: dict[str, str] = dict(headers or {})

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def clear_header(self, name: str) -> None:
        self.headers.pop(name, None)

    def get_header(self, name: str) -> str | None:
        return self.headers.get(name)
