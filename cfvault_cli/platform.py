"""Cloud Foundry session access.

The cf CLI persists the logged-in session (API target, access token and the
targeted org/space) in ``$CF_HOME/.cf/config.json``. ``CfConfigPlatform`` reads
that file and answers the three questions this tool needs from the platform.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, urlencode

from .cli_shared import (
    AuthTokenError,
    DecodeError,
    EndpointError,
    OpError,
    PlatformLookupError,
    ServiceNotFound,
    _load_json_object,
)
from .transport import Transport, _http_get, _http_request, status_detail


@dataclass(frozen=True)
class ServiceInstance:
    name: str
    guid: str


class Platform(Protocol):
    def lookup_service(self, name: str) -> ServiceInstance: ...

    def current_access_token(self) -> str: ...

    def current_api_endpoint(self) -> str: ...


def cf_config_path(cf_home: str | Path) -> Path:
    return Path(cf_home).expanduser() / ".cf" / "config.json"


def _obj(val: Any) -> dict[str, Any]:
    return val if isinstance(val, dict) else {}


class CfConfigPlatform:
    def __init__(self, config: dict[str, Any], *, transport: Transport = _http_request) -> None:
        self._config = config
        self._transport = transport

    @classmethod
    def from_cf_home(cls, cf_home: str | Path, *, transport: Transport = _http_request) -> "CfConfigPlatform":
        path = cf_config_path(cf_home)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise PlatformLookupError(f"cf config not found at {path} (run: cf login)") from e
        except OSError as e:
            raise PlatformLookupError(f"failed to read cf config {path}: {e}") from e
        try:
            config = _load_json_object(raw=raw, label=str(path))
        except DecodeError as e:
            raise PlatformLookupError(str(e)) from e
        return cls(config, transport=transport)

    def current_api_endpoint(self) -> str:
        target = str(self._config.get("Target") or "").strip().rstrip("/")
        if not target:
            raise EndpointError("no API endpoint set (run: cf api URL && cf login)")
        return target

    def current_access_token(self) -> str:
        # Stored with its scheme prefix ("bearer ..."), usable as-is.
        token = str(self._config.get("AccessToken") or "").strip()
        if not token:
            raise AuthTokenError("not logged in (run: cf login)")
        return token

    def _space_guid(self) -> str:
        guid = str(_obj(self._config.get("SpaceFields")).get("GUID") or "").strip()
        if not guid:
            raise PlatformLookupError("no space targeted (run: cf target -s SPACE)")
        return guid

    def lookup_service(self, name: str) -> ServiceInstance:
        api = self.current_api_endpoint()
        token = self.current_access_token()
        query = urlencode(
            {
                "q": f"name:{name}",
                "return_user_provided_service_instances": "true",
            }
        )
        url = f"{api}/v2/spaces/{quote(self._space_guid(), safe='')}/service_instances?{query}"
        try:
            status, _hdrs, raw = _http_get(
                url=url,
                headers={"Authorization": token},
                transport=self._transport,
            )
        except OpError as e:
            raise PlatformLookupError(f"error getting service {name!r}: {e}") from e
        if status != 200:
            raise PlatformLookupError(
                f"error getting service {name!r}: did not get 200 status back: {status_detail(status)}"
            )
        try:
            doc = _load_json_object(raw=raw, label="service instance lookup")
        except DecodeError as e:
            raise PlatformLookupError(f"error getting service {name!r}: {e}") from e

        resources = doc.get("resources")
        if not isinstance(resources, list) or not resources:
            raise ServiceNotFound(f"service instance {name} not found")
        guid = str(_obj(_obj(resources[0]).get("metadata")).get("guid") or "").strip()
        if not guid:
            raise PlatformLookupError(f"error getting service {name!r}: response has no instance guid")
        return ServiceInstance(name=name, guid=guid)


def resolve_service(platform: Platform, name: str) -> ServiceInstance:
    try:
        return platform.lookup_service(name)
    except (PlatformLookupError, AuthTokenError, EndpointError):
        raise
    except OpError as e:
        raise PlatformLookupError(f"error getting service: {e}") from e
