from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from typing import Any

from dotenv import find_dotenv, load_dotenv


class CfVaultError(Exception):
    pass


class UsageError(CfVaultError):
    pass


class OpError(CfVaultError):
    pass


class PlatformLookupError(OpError):
    """Raised when the service instance cannot be resolved on the platform."""


class ServiceNotFound(PlatformLookupError):
    """Raised when no service instance with the requested name exists."""


class AuthTokenError(OpError):
    """Raised when the platform session has no usable access token."""


class EndpointError(OpError):
    """Raised when the platform session has no API endpoint."""


class TransportError(OpError):
    """Raised when an HTTP request could not be issued or completed."""


class UnexpectedStatus(OpError):
    def __init__(self, message: str, *, status: int, status_text: str) -> None:
        self.status = status
        self.status_text = status_text
        super().__init__(message)


class DecodeError(OpError):
    """Raised when a platform response does not have the expected shape."""


class NoServiceKey(OpError):
    """Raised when the service instance has no service keys."""


class SubprocessLaunchError(OpError):
    """Raised when the secrets tool could not be started."""


class SubprocessFailure(OpError):
    def __init__(self, message: str, *, exit_code: int) -> None:
        self.exit_code = exit_code
        super().__init__(message)


CF_HOME = "CF_HOME"
CF_VAULT_BINARY = "CF_VAULT_BINARY"
CF_VAULT_QUIET = "CF_VAULT_QUIET"
VAULT_TOKEN = "VAULT_TOKEN"
VAULT_ADDR = "VAULT_ADDR"

DEFAULT_VAULT_BINARY = "vault"


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


@dataclass(frozen=True)
class GlobalOpts:
    cf_home: str
    vault_binary: str = DEFAULT_VAULT_BINARY
    quiet: bool = False


def _truthy(raw: str | None) -> bool:
    return str(raw or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _bootstrap_env() -> None:
    # Search from the working directory; exported variables win over .env.
    load_dotenv(find_dotenv(usecwd=True))


def _resolve_global_opts(
    *,
    cf_home: str | None,
    vault_binary: str | None,
    quiet: bool,
) -> GlobalOpts:
    home = (cf_home or _env_or_none(CF_HOME) or os.path.expanduser("~")).strip()
    binary = (vault_binary or _env_or_none(CF_VAULT_BINARY) or DEFAULT_VAULT_BINARY).strip()
    return GlobalOpts(
        cf_home=home,
        vault_binary=binary,
        quiet=bool(quiet) or _truthy(os.environ.get(CF_VAULT_QUIET)),
    )


def _load_json_object(*, raw: bytes | str, label: str) -> dict[str, Any]:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        val = json.loads(text)
    except Exception as e:
        raise DecodeError(f"invalid JSON from {label}: {e}") from e
    if not isinstance(val, dict):
        raise DecodeError(f"invalid JSON from {label}: expected object")
    return val
