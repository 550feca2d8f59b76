"""Custom resource types of the kubeflow.tkestack.io/v1alpha1 API group.

Core Kubernetes structures embedded in these resources (pod templates,
resource requirements, object references, environment variables and
deployment status) are kept as plain JSON-style dictionaries.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, TypeVar

GROUP = "kubeflow.tkestack.io"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"

JSON = dict[str, Any]

_E = TypeVar("_E", bound=Enum)
_R = TypeVar("_R", bound="_Resource")


def _coerce(enum_cls: type[_E], value: Any) -> _E | Any:
    """Return the enum member for ``value``, or ``value`` itself if unknown."""
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _format_time(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"{what} must be a mapping, got {type(data).__name__}")
    return data


def _copy_or_none(value: Any) -> Any:
    return None if value is None else copy.deepcopy(value)


_META_STRINGS = {
    "name": "name",
    "namespace": "namespace",
    "uid": "uid",
    "resource_version": "resourceVersion",
    "generate_name": "generateName",
}
_META_KNOWN = set(_META_STRINGS.values()) | {
    "labels",
    "annotations",
    "generation",
    "creationTimestamp",
    "deletionTimestamp",
    "ownerReferences",
    "finalizers",
}


@dataclass
class ObjectMeta:
    """Standard object metadata; unrecognised keys are kept in ``extra``."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    uid: str = ""
    resource_version: str = ""
    generate_name: str = ""
    generation: int = 0
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None
    owner_references: list[JSON] = field(default_factory=list)
    finalizers: list[str] = field(default_factory=list)
    extra: JSON = field(default_factory=dict)

    def to_dict(self) -> JSON:
        data: JSON = copy.deepcopy(self.extra)
        for attr, key in _META_STRINGS.items():
            value = getattr(self, attr)
            if value:
                data[key] = value
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        if self.generation:
            data["generation"] = self.generation
        if self.creation_timestamp is not None:
            data["creationTimestamp"] = _format_time(self.creation_timestamp)
        if self.deletion_timestamp is not None:
            data["deletionTimestamp"] = _format_time(self.deletion_timestamp)
        if self.owner_references:
            data["ownerReferences"] = copy.deepcopy(self.owner_references)
        if self.finalizers:
            data["finalizers"] = list(self.finalizers)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ObjectMeta:
        data = _mapping(data, "metadata")
        strings = {attr: data.get(key) or "" for attr, key in _META_STRINGS.items()}
        return cls(
            **strings,
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            generation=int(data.get("generation") or 0),
            creation_timestamp=_parse_time(data.get("creationTimestamp")),
            deletion_timestamp=_parse_time(data.get("deletionTimestamp")),
            owner_references=copy.deepcopy(list(data.get("ownerReferences") or [])),
            finalizers=list(data.get("finalizers") or []),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in _META_KNOWN},
        )


class LogLevel(str, Enum):
    """Log level of the enterprise gateway."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"


class JupyterKernelConditionType(str, Enum):
    """Kind of condition a kernel can be in."""

    RUNNING = "Running"
    FAILED = "Failed"
    SUCCEEDED = "Succeeded"


class ModeJupyterAuth(str, Enum):
    """Whether notebook authentication is enabled."""

    ENABLE = "enable"
    # Disabling sets token and password to empty strings; not recommended
    # unless access is restricted at another layer.
    DISABLE = "disable"


@dataclass
class JupyterGatewaySpec:
    """Desired state of a JupyterGateway."""

    kernels: list[str] | None = None
    default_kernel: str | None = None
    cull_idle_timeout: int | None = None
    cull_interval: int | None = None
    log_level: LogLevel | str | None = None
    resources: JSON | None = None
    image: str = ""
    cluster_role: str | None = None

    def to_dict(self) -> JSON:
        data: JSON = {}
        if self.kernels:
            data["kernels"] = list(self.kernels)
        if self.default_kernel is not None:
            data["defaultKernel"] = self.default_kernel
        if self.cull_idle_timeout is not None:
            data["cullIdleTimeout"] = self.cull_idle_timeout
        if self.cull_interval is not None:
            data["cullInterval"] = self.cull_interval
        if self.log_level is not None:
            data["logLevel"] = _plain(self.log_level)
        if self.resources is not None:
            data["resources"] = copy.deepcopy(self.resources)
        if self.image:
            data["image"] = self.image
        if self.cluster_role is not None:
            data["clusterRole"] = self.cluster_role
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterGatewaySpec:
        data = _mapping(data, "spec")
        kernels = data.get("kernels")
        return cls(
            kernels=None if kernels is None else list(kernels),
            default_kernel=data.get("defaultKernel"),
            cull_idle_timeout=data.get("cullIdleTimeout"),
            cull_interval=data.get("cullInterval"),
            log_level=_coerce(LogLevel, data.get("logLevel")),
            resources=_copy_or_none(data.get("resources")),
            image=data.get("image") or "",
            cluster_role=data.get("clusterRole"),
        )


@dataclass
class JupyterGatewayStatus:
    """Observed state of a JupyterGateway: the status of its deployment."""

    deployment_status: JSON = field(default_factory=dict)

    def to_dict(self) -> JSON:
        return copy.deepcopy(self.deployment_status)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterGatewayStatus:
        return cls(deployment_status=copy.deepcopy(dict(_mapping(data, "status"))))


@dataclass
class JupyterKernelCondition:
    """One observed condition of a kernel."""

    type: JupyterKernelConditionType | str
    status: str
    reason: str = ""
    message: str = ""
    last_update_time: datetime | None = None
    last_transition_time: datetime | None = None

    def to_dict(self) -> JSON:
        data: JSON = {"type": _plain(self.type), "status": self.status}
        if self.reason:
            data["reason"] = self.reason
        if self.message:
            data["message"] = self.message
        data["lastUpdateTime"] = _format_time(self.last_update_time)
        data["lastTransitionTime"] = _format_time(self.last_transition_time)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JupyterKernelCondition:
        data = _mapping(data, "condition")
        return cls(
            type=_coerce(JupyterKernelConditionType, data.get("type", "")),
            status=data.get("status", ""),
            reason=data.get("reason") or "",
            message=data.get("message") or "",
            last_update_time=_parse_time(data.get("lastUpdateTime")),
            last_transition_time=_parse_time(data.get("lastTransitionTime")),
        )


@dataclass
class JupyterKernelStatus:
    """Observed state of a JupyterKernel."""

    conditions: list[JupyterKernelCondition] = field(default_factory=list)
    start_time: datetime | None = None
    completion_time: datetime | None = None
    last_reconcile_time: datetime | None = None

    def to_dict(self) -> JSON:
        data: JSON = {"conditions": [c.to_dict() for c in self.conditions]}
        if self.start_time is not None:
            data["startTime"] = _format_time(self.start_time)
        if self.completion_time is not None:
            data["completionTime"] = _format_time(self.completion_time)
        if self.last_reconcile_time is not None:
            data["lastReconcileTime"] = _format_time(self.last_reconcile_time)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterKernelStatus:
        data = _mapping(data, "status")
        return cls(
            conditions=[
                JupyterKernelCondition.from_dict(c) for c in data.get("conditions") or []
            ],
            start_time=_parse_time(data.get("startTime")),
            completion_time=_parse_time(data.get("completionTime")),
            last_reconcile_time=_parse_time(data.get("lastReconcileTime")),
        )


@dataclass
class JupyterKernelCRDSpec:
    """Desired state of a JupyterKernel: the pod template to run."""

    template: JSON = field(default_factory=dict)

    def to_dict(self) -> JSON:
        return {"template": copy.deepcopy(self.template)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterKernelCRDSpec:
        data = _mapping(data, "spec")
        return cls(template=copy.deepcopy(dict(data.get("template") or {})))


@dataclass
class JupyterKernelSpecSpec:
    """Desired state of a JupyterKernelSpec."""

    language: str = ""
    display_name: str = ""
    image: str = ""
    env: list[JSON] = field(default_factory=list)
    command: list[str] = field(default_factory=list)
    class_name: str = ""
    template: JSON | None = None

    def to_dict(self) -> JSON:
        data: JSON = {}
        if self.language:
            data["language"] = self.language
        if self.display_name:
            data["displayName"] = self.display_name
        if self.image:
            data["image"] = self.image
        if self.env:
            data["env"] = copy.deepcopy(self.env)
        if self.command:
            data["command"] = list(self.command)
        if self.class_name:
            data["className"] = self.class_name
        if self.template is not None:
            data["template"] = copy.deepcopy(self.template)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterKernelSpecSpec:
        data = _mapping(data, "spec")
        return cls(
            language=data.get("language") or "",
            display_name=data.get("displayName") or "",
            image=data.get("image") or "",
            env=copy.deepcopy(list(data.get("env") or [])),
            command=list(data.get("command") or []),
            class_name=data.get("className") or "",
            template=_copy_or_none(data.get("template")),
        )


@dataclass
class JupyterKernelTemplateSpec:
    """Desired state of a JupyterKernelTemplate."""

    template: JSON | None = None

    def to_dict(self) -> JSON:
        if self.template is None:
            return {}
        return {"template": copy.deepcopy(self.template)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterKernelTemplateSpec:
        data = _mapping(data, "spec")
        return cls(template=_copy_or_none(data.get("template")))


@dataclass
class JupyterAuth:
    """How notebook tokens or passwords are handled."""

    mode: ModeJupyterAuth | str = ""
    token: str | None = None
    password: str | None = None

    def to_dict(self) -> JSON:
        data: JSON = {}
        if self.mode:
            data["mode"] = _plain(self.mode)
        if self.token is not None:
            data["token"] = self.token
        if self.password is not None:
            data["password"] = self.password
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterAuth:
        data = _mapping(data, "auth")
        return cls(
            mode=_coerce(ModeJupyterAuth, data.get("mode") or ""),
            token=data.get("token"),
            password=data.get("password"),
        )


@dataclass
class JupyterNotebookSpec:
    """Desired state of a JupyterNotebook."""

    gateway: JSON | None = None
    auth: JupyterAuth | None = None
    template: JSON | None = None

    def to_dict(self) -> JSON:
        data: JSON = {}
        if self.gateway is not None:
            data["gateway"] = copy.deepcopy(self.gateway)
        if self.auth is not None:
            data["auth"] = self.auth.to_dict()
        if self.template is not None:
            data["template"] = copy.deepcopy(self.template)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> JupyterNotebookSpec:
        data = _mapping(data, "spec")
        auth = data.get("auth")
        return cls(
            gateway=_copy_or_none(data.get("gateway")),
            auth=None if auth is None else JupyterAuth.from_dict(auth),
            template=_copy_or_none(data.get("template")),
        )


@dataclass
class _EmptyStatus:
    def to_dict(self) -> JSON:
        return {}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> _EmptyStatus:
        _mapping(data, "status")
        return cls()


@dataclass
class _Resource:
    kind: ClassVar[str] = ""
    plural: ClassVar[str] = ""
    api_version: ClassVar[str] = API_VERSION
    _spec_type: ClassVar[type] = object
    _status_type: ClassVar[type] = _EmptyStatus

    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace


def _resource_to_dict(resource: Any) -> JSON:
    return {
        "apiVersion": resource.api_version,
        "kind": resource.kind,
        "metadata": resource.metadata.to_dict(),
        "spec": resource.spec.to_dict(),
        "status": resource.status.to_dict(),
    }


def _resource_from_dict(cls: type[_R], data: Mapping[str, Any]) -> _R:
    if not isinstance(data, Mapping):
        raise TypeError(f"{cls.__name__} data must be a mapping")
    kind = data.get("kind")
    if kind and kind != cls.kind:
        raise ValueError(f"expected kind {cls.kind!r}, got {kind!r}")
    api_version = data.get("apiVersion")
    if api_version and api_version != cls.api_version:
        raise ValueError(
            f"expected apiVersion {cls.api_version!r}, got {api_version!r}"
        )
    return cls(  # type: ignore[call-arg]
        metadata=ObjectMeta.from_dict(data.get("metadata")),
        spec=cls._spec_type.from_dict(data.get("spec")),
        status=cls._status_type.from_dict(data.get("status")),
    )


@dataclass
class JupyterGateway(_Resource):
    """A Jupyter enterprise gateway."""

    kind: ClassVar[str] = "JupyterGateway"
    plural: ClassVar[str] = "jupytergateways"
    _spec_type: ClassVar[type] = JupyterGatewaySpec
    _status_type: ClassVar[type] = JupyterGatewayStatus

    spec: JupyterGatewaySpec = field(default_factory=JupyterGatewaySpec)
    status: JupyterGatewayStatus = field(default_factory=JupyterGatewayStatus)

    def to_dict(self) -> JSON:
        """Serialise to the resource's JSON form."""
        return _resource_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JupyterGateway:
        """Build the resource from its JSON form."""
        return _resource_from_dict(cls, data)

    def deep_copy(self) -> JupyterGateway:
        """Return an independent copy of the resource."""
        return copy.deepcopy(self)


@dataclass
class JupyterKernel(_Resource):
    """A running Jupyter kernel."""

    kind: ClassVar[str] = "JupyterKernel"
    plural: ClassVar[str] = "jupyterkernels"
    _spec_type: ClassVar[type] = JupyterKernelCRDSpec
    _status_type: ClassVar[type] = JupyterKernelStatus

    spec: JupyterKernelCRDSpec = field(default_factory=JupyterKernelCRDSpec)
    status: JupyterKernelStatus = field(default_factory=JupyterKernelStatus)

    def to_dict(self) -> JSON:
        """Serialise to the resource's JSON form."""
        return _resource_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JupyterKernel:
        """Build the resource from its JSON form."""
        return _resource_from_dict(cls, data)

    def deep_copy(self) -> JupyterKernel:
        """Return an independent copy of the resource."""
        return copy.deepcopy(self)


@dataclass
class JupyterKernelSpec(_Resource):
    """A kernel specification offered by gateways."""

    kind: ClassVar[str] = "JupyterKernelSpec"
    plural: ClassVar[str] = "jupyterkernelspecs"
    _spec_type: ClassVar[type] = JupyterKernelSpecSpec

    spec: JupyterKernelSpecSpec = field(default_factory=JupyterKernelSpecSpec)
    status: _EmptyStatus = field(default_factory=_EmptyStatus)

    def to_dict(self) -> JSON:
        """Serialise to the resource's JSON form."""
        return _resource_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JupyterKernelSpec:
        """Build the resource from its JSON form."""
        return _resource_from_dict(cls, data)

    def deep_copy(self) -> JupyterKernelSpec:
        """Return an independent copy of the resource."""
        return copy.deepcopy(self)


@dataclass
class JupyterKernelTemplate(_Resource):
    """A pod template from which kernels are launched."""

    kind: ClassVar[str] = "JupyterKernelTemplate"
    plural: ClassVar[str] = "jupyterkerneltemplates"
    _spec_type: ClassVar[type] = JupyterKernelTemplateSpec

    spec: JupyterKernelTemplateSpec = field(default_factory=JupyterKernelTemplateSpec)
    status: _EmptyStatus = field(default_factory=_EmptyStatus)

    def to_dict(self) -> JSON:
        """Serialise to the resource's JSON form."""
        return _resource_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JupyterKernelTemplate:
        """Build the resource from its JSON form."""
        return _resource_from_dict(cls, data)

    def deep_copy(self) -> JupyterKernelTemplate:
        """Return an independent copy of the resource."""
        return copy.deepcopy(self)


@dataclass
class JupyterNotebook(_Resource):
    """A Jupyter notebook server."""

    kind: ClassVar[str] = "JupyterNotebook"
    plural: ClassVar[str] = "jupyternotebooks"
    _spec_type: ClassVar[type] = JupyterNotebookSpec

    spec: JupyterNotebookSpec = field(default_factory=JupyterNotebookSpec)
    status: _EmptyStatus = field(default_factory=_EmptyStatus)

    def to_dict(self) -> JSON:
        """Serialise to the resource's JSON form."""
        return _resource_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JupyterNotebook:
        """Build the resource from its JSON form."""
        return _resource_from_dict(cls, data)

    def deep_copy(self) -> JupyterNotebook:
        """Return an independent copy of the resource."""
        return copy.deepcopy(self)


KINDS: dict[str, type[_Resource]] = {
    cls.kind: cls
    for cls in (
        JupyterGateway,
        JupyterKernel,
        JupyterKernelSpec,
        JupyterKernelTemplate,
        JupyterNotebook,
    )
}