"""Minimal Kubernetes client layer: object access, owner references and events."""

from __future__ import annotations

import copy
import logging
import os
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests

from .api import KINDS, _Resource

JSON = dict[str, Any]

log = logging.getLogger(__name__)

# Kind, API path prefix, plural name and apiVersion of every core kind the
# operator touches.
_CORE_KIND_TABLE: tuple[tuple[str, str, str, str], ...] = (
    ("ConfigMap", "/api/v1", "configmaps", "v1"),
    ("Service", "/api/v1", "services", "v1"),
    ("ServiceAccount", "/api/v1", "serviceaccounts", "v1"),
    ("Pod", "/api/v1", "pods", "v1"),
    ("Secret", "/api/v1", "secrets", "v1"),
    ("Deployment", "/apis/apps/v1", "deployments", "apps/v1"),
    (
        "RoleBinding",
        "/apis/rbac.authorization.k8s.io/v1",
        "rolebindings",
        "rbac.authorization.k8s.io/v1",
    ),
)
_CORE_KINDS: dict[str, tuple[str, str]] = {
    kind: (prefix, plural) for kind, prefix, plural, _ in _CORE_KIND_TABLE
}
_CORE_API_VERSIONS: dict[str, str] = {
    kind: api_version for kind, _, _, api_version in _CORE_KIND_TABLE
}


@dataclass(frozen=True)
class ObjectKey:
    """Namespace and name that identify an object."""

    namespace: str
    name: str


class ApiError(Exception):
    """An error reported by the API server."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(ApiError):
    """The requested object does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 404)


class AlreadyExistsError(ApiError):
    """An object with the same key already exists."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 409)


class AlreadyOwnedError(ValueError):
    """The object is already controlled by another owner."""


def _kind_name(kind: Any) -> str:
    if isinstance(kind, str):
        return kind
    name = getattr(kind, "kind", None)
    if isinstance(name, str) and name:
        return name
    raise TypeError(f"cannot determine kind from {kind!r}")


def _to_json(obj: Any) -> JSON:
    if isinstance(obj, _Resource):
        return obj.to_dict()
    if isinstance(obj, Mapping):
        data = copy.deepcopy(dict(obj))
        data.setdefault("metadata", {})
        return data
    raise TypeError(f"unsupported object {type(obj).__name__}")


def _from_json(kind: str, data: JSON) -> Any:
    resource = KINDS.get(kind)
    if resource is not None:
        return resource.from_dict(data)
    return data


def _key_of(data: JSON) -> ObjectKey:
    meta = data.get("metadata") or {}
    return ObjectKey(meta.get("namespace", ""), meta.get("name", ""))


class Client:
    """Interface for reading and writing cluster objects.

    Custom resources come back as their ``api`` classes; core kinds as dicts.
    """

    def get(self, kind: Any, key: ObjectKey) -> Any:
        raise NotImplementedError

    def create(self, obj: Any) -> Any:
        raise NotImplementedError

    def update(self, obj: Any) -> Any:
        raise NotImplementedError

    def update_status(self, obj: Any) -> Any:
        raise NotImplementedError

    def delete(self, kind: Any, key: ObjectKey) -> None:
        raise NotImplementedError


class MemoryClient(Client):
    """A client that keeps objects in memory."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str, str], JSON] = {}
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _lookup(self, kind: str, key: ObjectKey) -> JSON:
        try:
            return self._objects[(kind, key.namespace, key.name)]
        except KeyError:
            raise NotFoundError(
                f'{kind} "{key.name}" not found in namespace "{key.namespace}"'
            ) from None

    def get(self, kind: Any, key: ObjectKey) -> Any:
        name = _kind_name(kind)
        return _from_json(name, copy.deepcopy(self._lookup(name, key)))

    def create(self, obj: Any) -> Any:
        data = _to_json(obj)
        kind = _kind_name(data.get("kind", ""))
        key = _key_of(data)
        if not key.name:
            raise ApiError(f"{kind} must have a name", 422)
        slot = (kind, key.namespace, key.name)
        if slot in self._objects:
            raise AlreadyExistsError(f'{kind} "{key.name}" already exists')
        meta = data["metadata"]
        meta.setdefault("uid", str(uuid.uuid4()))
        meta["resourceVersion"] = self._next_version()
        self._objects[slot] = data
        return _from_json(kind, copy.deepcopy(data))

    def update(self, obj: Any) -> Any:
        data = _to_json(obj)
        kind = _kind_name(data.get("kind", ""))
        current = self._lookup(kind, _key_of(data))
        if "status" in current:
            data["status"] = copy.deepcopy(current["status"])
        else:
            data.pop("status", None)
        meta = data["metadata"]
        meta["uid"] = current["metadata"].get("uid", "")
        meta["resourceVersion"] = self._next_version()
        self._objects[(kind, *_key_pair(data))] = data
        return _from_json(kind, copy.deepcopy(data))

    def update_status(self, obj: Any) -> Any:
        data = _to_json(obj)
        kind = _kind_name(data.get("kind", ""))
        current = self._lookup(kind, _key_of(data))
        current["status"] = copy.deepcopy(data.get("status") or {})
        current["metadata"]["resourceVersion"] = self._next_version()
        return _from_json(kind, copy.deepcopy(current))

    def delete(self, kind: Any, key: ObjectKey) -> None:
        name = _kind_name(kind)
        self._lookup(name, key)
        del self._objects[(name, key.namespace, key.name)]


def _key_pair(data: JSON) -> tuple[str, str]:
    key = _key_of(data)
    return key.namespace, key.name


class HttpClient(Client):
    """A client that talks to the API server over HTTPS."""

    TOKEN_PATH = Path("/var/run/secrets/kubernetes.io/serviceaccount/token")
    CA_PATH = Path("/var/run/secrets/kubernetes.io/serviceaccount/ca.crt")

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        verify: bool | str = True,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.verify = verify
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.timeout = timeout

    @classmethod
    def in_cluster(cls) -> HttpClient:
        """Build a client from the service account mounted into the pod."""
        host = os.environ.get("KUBERNETES_SERVICE_HOST")
        port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
        if not host:
            raise RuntimeError("not running inside a cluster: KUBERNETES_SERVICE_HOST unset")
        token = cls.TOKEN_PATH.read_text().strip()
        verify: bool | str = str(cls.CA_PATH) if cls.CA_PATH.exists() else True
        if ":" in host:
            host = f"[{host}]"
        return cls(f"https://{host}:{port}", token=token, verify=verify)

    def _collection(self, kind: str, namespace: str) -> str:
        if kind in _CORE_KINDS:
            prefix, plural = _CORE_KINDS[kind]
        elif kind in KINDS:
            resource = KINDS[kind]
            prefix, plural = f"/apis/{resource.api_version}", resource.plural
        else:
            raise ValueError(f"unknown kind {kind!r}")
        return f"{self.base_url}{prefix}/namespaces/{namespace}/{plural}"

    def _url(self, kind: str, key: ObjectKey) -> str:
        return f"{self._collection(kind, key.namespace)}/{key.name}"

    def _send(self, method: str, url: str, body: JSON | None = None) -> JSON:
        response = self.session.request(method, url, json=body, timeout=self.timeout)
        if response.ok:
            return response.json() if response.content else {}
        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text
        if response.status_code == 404:
            raise NotFoundError(message)
        if response.status_code == 409:
            raise AlreadyExistsError(message)
        raise ApiError(message, response.status_code)

    @staticmethod
    def _prepare(obj: Any) -> tuple[str, JSON]:
        data = _to_json(obj)
        kind = _kind_name(data.get("kind", ""))
        if kind in _CORE_API_VERSIONS:
            data.setdefault("apiVersion", _CORE_API_VERSIONS[kind])
        return kind, data

    def get(self, kind: Any, key: ObjectKey) -> Any:
        name = _kind_name(kind)
        return _from_json(name, self._send("GET", self._url(name, key)))

    def create(self, obj: Any) -> Any:
        kind, data = self._prepare(obj)
        url = self._collection(kind, _key_of(data).namespace)
        return _from_json(kind, self._send("POST", url, data))

    def update(self, obj: Any) -> Any:
        kind, data = self._prepare(obj)
        return _from_json(kind, self._send("PUT", self._url(kind, _key_of(data)), data))

    def update_status(self, obj: Any) -> Any:
        kind, data = self._prepare(obj)
        url = self._url(kind, _key_of(data)) + "/status"
        return _from_json(kind, self._send("PUT", url, data))

    def delete(self, kind: Any, key: ObjectKey) -> None:
        self._send("DELETE", self._url(_kind_name(kind), key))


@dataclass
class Event:
    """An event recorded against an object."""

    kind: str
    namespace: str
    name: str
    type: str
    reason: str
    message: str


@dataclass
class EventRecorder:
    """Records events in memory and writes them to the log."""

    component: str = ""
    events: list[Event] = field(default_factory=list)

    def event(self, obj: Any, event_type: str, reason: str, message: str) -> Event:
        data = _to_json(obj)
        key = _key_of(data)
        recorded = Event(
            kind=data.get("kind", ""),
            namespace=key.namespace,
            name=key.name,
            type=event_type,
            reason=reason,
            message=message,
        )
        self.events.append(recorded)
        log.info("%s event %s/%s %s: %s", event_type, key.namespace, key.name, reason, message)
        return recorded


def set_controller_reference(owner: Any, obj: Any) -> None:
    """Mark ``owner`` as the controller of ``obj``, modifying ``obj`` in place."""
    owner_data = _to_json(owner)
    owner_meta = owner_data.get("metadata") or {}
    owner_ns = owner_meta.get("namespace", "")
    if isinstance(obj, _Resource):
        obj_ns = obj.metadata.namespace
        refs = obj.metadata.owner_references
    elif isinstance(obj, dict):
        meta = obj.setdefault("metadata", {})
        obj_ns = meta.get("namespace", "")
        refs = meta.setdefault("ownerReferences", [])
    else:
        raise TypeError(f"unsupported object {type(obj).__name__}")
    if owner_ns and owner_ns != obj_ns:
        raise ValueError(
            f"cross-namespace owner references are disallowed: owner in {owner_ns!r}, "
            f"object in {obj_ns!r}"
        )
    ref = {
        "apiVersion": owner_data.get("apiVersion", ""),
        "kind": owner_data.get("kind", ""),
        "name": owner_meta.get("name", ""),
        "uid": owner_meta.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }

    def same(r: JSON) -> bool:
        return (
            r.get("kind") == ref["kind"]
            and r.get("name") == ref["name"]
            and r.get("apiVersion", "").split("/")[0] == ref["apiVersion"].split("/")[0]
        )

    for existing in refs:
        if existing.get("controller") and not same(existing):
            raise AlreadyOwnedError(
                f"object is already owned by {existing.get('kind')} {existing.get('name')}"
            )
    for index, existing in enumerate(refs):
        if same(existing):
            refs[index] = ref
            return
    refs.append(ref)