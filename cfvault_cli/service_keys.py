from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import quote

from .cli_shared import (
    DecodeError,
    NoServiceKey,
    UnexpectedStatus,
    _eprint,
    _load_json_object,
)
from .platform import ServiceInstance
from .transport import Transport, _http_get, _http_request, status_detail, status_text


@dataclass(frozen=True)
class CredentialRecord:
    name: str
    address: str
    token: str
    generic_backend_path: str
    shared_org_path: str
    shared_space_path: str


def service_keys_url(api_base: str, instance_guid: str) -> str:
    return f"{api_base.rstrip('/')}/v2/service_instances/{quote(instance_guid, safe='')}/service_keys"


def _sub(obj: dict[str, Any], key: str, *, path: str) -> dict[str, Any]:
    val = obj.get(key)
    if val is None:
        return {}
    if not isinstance(val, dict):
        raise DecodeError(f"error decoding response for keys: {path}.{key}: expected object")
    return val


def _text(obj: dict[str, Any], key: str, *, path: str) -> str:
    val = obj.get(key)
    if val is None:
        return ""
    if not isinstance(val, str):
        raise DecodeError(f"error decoding response for keys: {path}.{key}: expected string")
    return val


def _decode_entity(resource: Any, *, index: int) -> tuple[str, dict[str, Any]]:
    path = f"resources[{index}]"
    if not isinstance(resource, dict):
        raise DecodeError(f"error decoding response for keys: {path}: expected object")
    entity = _sub(resource, "entity", path=path)
    return _text(entity, "name", path=f"{path}.entity"), _sub(entity, "credentials", path=f"{path}.entity")


def decode_service_keys(raw: bytes) -> list[Any]:
    """Decode a ``/v2/service_instances/:guid/service_keys`` listing.

    Returns the raw ``resources`` entries; a missing array is an empty
    listing.
    """
    try:
        doc = _load_json_object(raw=raw, label="service keys listing")
    except DecodeError as e:
        raise DecodeError(f"error decoding response for keys: {e}") from e
    resources = doc.get("resources")
    if resources is None:
        return []
    if not isinstance(resources, list):
        raise DecodeError("error decoding response for keys: resources: expected array")
    return resources


def credential_record(resource: Any, *, index: int = 0) -> CredentialRecord:
    """Extract the credentials of one service-key resource.

    Fields absent from the payload decode as empty strings; fields of the
    wrong JSON type are a ``DecodeError``.
    """
    name, creds = _decode_entity(resource, index=index)
    p = f"resources[{index}].entity.credentials"
    shared = _sub(creds, "backends_shared", path=p)
    return CredentialRecord(
        name=name,
        address=_text(creds, "Address", path=p),
        token=_text(_sub(creds, "auth", path=p), "token", path=f"{p}.auth"),
        generic_backend_path=_text(_sub(creds, "backends", path=p), "generic", path=f"{p}.backends"),
        shared_org_path=_text(shared, "organization", path=f"{p}.backends_shared"),
        shared_space_path=_text(shared, "space", path=f"{p}.backends_shared"),
    )


def fetch_credentials(
    instance: ServiceInstance,
    token: str,
    api_base: str,
    *,
    transport: Transport = _http_request,
    log: Callable[[str], None] | None = _eprint,
) -> CredentialRecord:
    status, _hdrs, raw = _http_get(
        url=service_keys_url(api_base, instance.guid),
        headers={"Authorization": token},
        transport=transport,
    )
    if status != 200:
        text = status_text(status)
        raise UnexpectedStatus(
            f"did not get 200 status back: {status_detail(status)}",
            status=status,
            status_text=text,
        )

    resources = decode_service_keys(raw)
    if not resources:
        raise NoServiceKey(
            f"no service keys found. create one with: cf create-service-key {instance.name} my-key"
        )

    # Only the first key is read; the others are never decoded.
    selected = credential_record(resources[0], index=0)
    if log is not None:
        log(f"Using Vault instance: {instance.name} with service key: {selected.name}")
    return selected
