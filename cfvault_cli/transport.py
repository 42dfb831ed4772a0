from __future__ import annotations

from http import HTTPStatus
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .cli_shared import TransportError


class Transport(Protocol):
    def __call__(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None = None,
        timeout_seconds: float | None = None,
    ) -> tuple[int, dict[str, str], bytes]: ...


def _http_request(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None = None,
    timeout_seconds: float | None = None,
) -> tuple[int, dict[str, str], bytes]:
    req = Request(url, data=body, method=str(method).upper())
    for k, v in headers.items():
        req.add_header(k, v)
    try:
        with urlopen(req, timeout=timeout_seconds) as resp:
            status = getattr(resp, "status", 200)
            hdrs = {k.lower(): v for k, v in dict(resp.headers).items()}
            data = resp.read()
            return int(status), hdrs, data
    except HTTPError as e:
        try:
            hdrs = {k.lower(): v for k, v in dict(e.headers or {}).items()}
            data = e.read() if hasattr(e, "read") else b""
        finally:
            e.close()
        return int(getattr(e, "code", 0) or 0), hdrs, data
    except (URLError, OSError) as e:
        raise TransportError(f"http request failed: {e}") from e


def _http_get(
    *,
    url: str,
    headers: dict[str, str],
    transport: Transport = _http_request,
) -> tuple[int, dict[str, str], bytes]:
    return transport(method="GET", url=url, headers=headers)


def status_text(status: int) -> str:
    try:
        return f"{status} {HTTPStatus(status).phrase}"
    except ValueError:
        return str(status)


def status_detail(status: int) -> str:
    text = status_text(status)
    if status == 401:
        # The cf CLI only refreshes the stored token on its own commands.
        return f"{text} (run: cf oauth-token or cf login)"
    return text
