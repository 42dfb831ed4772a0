from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

API = "https://api.example.com"
SPACE_GUID = "space-1"


def service_key_resource(
    *,
    name: str = "my-key",
    address: str = "https://vault.example.com:8200",
    token: str = "vault-token",
    generic: str = "instances/inst-1",
    organization: str = "orgs/acme",
    space: str = "spaces/dev",
) -> dict[str, Any]:
    return {
        "metadata": {"guid": f"key-{name}"},
        "entity": {
            "name": name,
            "credentials": {
                "Address": address,
                "auth": {"token": token},
                "backends": {"generic": generic},
                "backends_shared": {"organization": organization, "space": space},
            },
        },
    }


def body(obj: Any) -> bytes:
    return json.dumps(obj).encode("utf-8")


class FakeTransport:
    """Serves canned responses keyed by URL path prefix and records requests."""

    def __init__(self, routes: dict[str, tuple[int, bytes]]) -> None:
        self.routes = routes
        self.calls: list[dict[str, Any]] = []

    def __call__(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None = None,
        timeout_seconds: float | None = None,
    ) -> tuple[int, dict[str, str], bytes]:
        del body, timeout_seconds
        self.calls.append({"method": method, "url": url, "headers": dict(headers)})
        for prefix, (status, raw) in self.routes.items():
            if url.startswith(prefix):
                return status, {}, raw
        return 404, {}, b'{"description":"not found"}'


@pytest.fixture
def cf_home(tmp_path: Path) -> Path:
    cf_dir = tmp_path / ".cf"
    cf_dir.mkdir()
    config = {
        "ConfigVersion": 3,
        "Target": f"{API}/",
        "AccessToken": "bearer abc.def.ghi",
        "OrganizationFields": {"GUID": "org-1", "Name": "acme"},
        "SpaceFields": {"GUID": SPACE_GUID, "Name": "dev"},
    }
    (cf_dir / "config.json").write_text(json.dumps(config), encoding="utf-8")
    return tmp_path
