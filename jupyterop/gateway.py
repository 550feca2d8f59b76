"""Generates and reconciles the objects that run a Jupyter enterprise gateway."""

from __future__ import annotations

import copy
import logging
from typing import Any

from .api import JupyterGateway, JupyterKernelSpec, LogLevel
from .kube import (
    ApiError,
    Client,
    EventRecorder,
    NotFoundError,
    ObjectKey,
    set_controller_reference,
)

DEFAULT_IMAGE = "ghcr.io/skai-x/enterprise-gateway:2.6.0"
DEFAULT_CONTAINER_NAME = "gateway"
DEFAULT_KERNEL_IMAGE = "ghcr.io/skai-x/jupyter-kernel-py:2.6.0"
DEFAULT_PORT_NAME = "gateway"
DEFAULT_KERNEL = "python_kubernetes"
DEFAULT_PORT = 8888
DEFAULT_GATEWAY_CLUSTER_ROLE = "enterprise-gateway-controller"
DEFAULT_SERVICE_ACCOUNT = "enterprise-gateway-sa"

LABEL_GATEWAY = "gateway"
LABEL_NS = "namespace"

CULL_TIMEOUT_OPT = "--MappingKernelManager.cull_idle_timeout"
CULL_INTERVAL_OPT = "--MappingKernelManager.cull_interval"

DEFAULT_KERNEL_PATH = "/usr/local/share/jupyter/kernels/"
DEFAULT_KERNELS = (
    "'r_kubernetes','python_kubernetes','python_tf_kubernetes',"
    "'python_tf_gpu_kubernetes','scala_kubernetes','spark_r_kubernetes',"
    "'spark_python_kubernetes','spark_scala_kubernetes'"
)

EVENT_WARNING = "Warning"

JSON = dict[str, Any]


def _env(name: str, value: str) -> JSON:
    return {"name": name, "value": value}


class GatewayGenerator:
    """Builds the desired objects for a JupyterGateway."""

    def __init__(self, client: Client, gateway: JupyterGateway | None) -> None:
        if gateway is None:
            raise ValueError("got None when initializing generator")
        self.client = client
        self.gateway = gateway

    def labels(self) -> dict[str, str]:
        return {LABEL_NS: self.gateway.namespace, LABEL_GATEWAY: self.gateway.name}

    def _metadata(self) -> JSON:
        return {
            "namespace": self.gateway.namespace,
            "name": self.gateway.name,
            "labels": self.labels(),
        }

    def desired_service(self) -> JSON:
        """Return the service in front of the gateway, without an owner."""
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": self._metadata(),
            "spec": {
                "selector": self.labels(),
                "type": "ClusterIP",
                "sessionAffinity": "ClientIP",
                "ports": [
                    {"name": DEFAULT_PORT_NAME, "port": DEFAULT_PORT, "protocol": "TCP"}
                ],
            },
        }

    def desired_role_binding(self, service_account: JSON) -> JSON:
        """Return the role binding granting the gateway's service account its role."""
        sa_meta = service_account.get("metadata") or {}
        return {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "RoleBinding",
            "metadata": self._metadata(),
            "subjects": [
                {
                    "kind": "ServiceAccount",
                    "name": sa_meta.get("name", ""),
                    "namespace": sa_meta.get("namespace", ""),
                }
            ],
            "roleRef": {
                "name": DEFAULT_GATEWAY_CLUSTER_ROLE,
                "kind": "ClusterRole",
                "apiGroup": "rbac.authorization.k8s.io",
            },
        }

    def desired_service_account(self) -> JSON:
        """Return the gateway's service account, without an owner."""
        return {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": self._metadata(),
        }

    def desired_deployment(self, service_account_name: str) -> JSON:
        """Return the gateway deployment, without an owner.

        Raises the client's error if a listed kernel spec cannot be read.
        """
        volumes = self.volumes()
        labels = self.labels()
        env = [
            _env("EG_DEFAULT_KERNEL_NAME", self.default_kernel()),
            _env("EG_KERNEL_CLUSTER_ROLE", self.default_cluster_role()),
            _env("EG_KERNEL_WHITELIST", self.kernels()),
            _env("EG_PORT", str(DEFAULT_PORT)),
            # A range of 0..0 disables port-range enforcement.
            _env("EG_PORT_RANGE", "0..0"),
            _env("EG_NAMESPACE", self.gateway.namespace),
            _env("EG_NAME", self.gateway.name),
            _env("EG_SHARED_NAMESPACE", "true"),
            _env("EG_MIRROR_WORKING_DIRS", "false"),
            _env("EG_CULL_IDLE_TIMEOUT", "3600"),
            _env("EG_KERNEL_LAUNCH_TIMEOUT", "60"),
            _env("EG_KERNEL_IMAGE", DEFAULT_KERNEL_IMAGE),
        ]
        container: JSON = {
            "name": DEFAULT_CONTAINER_NAME,
            "image": DEFAULT_IMAGE,
            "imagePullPolicy": "IfNotPresent",
            "ports": [
                {
                    "name": DEFAULT_PORT_NAME,
                    "containerPort": DEFAULT_PORT,
                    "protocol": "TCP",
                }
            ],
            "command": ["/usr/local/bin/start-enterprise-gateway.sh"],
            "volumeMounts": self.volume_mounts(volumes),
            "env": env,
        }

        spec = self.gateway.spec
        if spec.image:
            container["image"] = spec.image
        if spec.log_level is not None:
            level = spec.log_level
            value = level.value if isinstance(level, LogLevel) else str(level)
            env.append(_env("EG_LOG_LEVEL", value))
        if spec.cull_idle_timeout is not None:
            env.append(_env("EG_CULL_IDLE_TIMEOUT", str(int(spec.cull_idle_timeout))))
        if spec.cull_interval is not None:
            env.append(_env("EG_CULL_INTERVAL", str(int(spec.cull_interval))))
        if spec.resources is not None:
            container["resources"] = copy.deepcopy(spec.resources)

        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": self._metadata(),
            "spec": {
                "selector": {"matchLabels": dict(labels)},
                "template": {
                    "metadata": {"labels": dict(labels)},
                    "spec": {
                        "serviceAccountName": service_account_name,
                        "volumes": volumes,
                        "containers": [container],
                    },
                },
            },
        }

    def volume_mounts(self, volumes: list[JSON]) -> list[JSON]:
        """Return a read-only mount under the kernel directory for each volume."""
        return [
            {
                "name": volume["name"],
                "readOnly": True,
                "mountPath": f"{DEFAULT_KERNEL_PATH}/{volume['name']}",
            }
            for volume in volumes
        ]

    def volumes(self) -> list[JSON]:
        """Return a config map volume for each kernel spec of the gateway."""
        result = []
        for kernel in self.gateway.spec.kernels or []:
            self.client.get(JupyterKernelSpec, ObjectKey(self.gateway.namespace, kernel))
            result.append({"name": kernel, "configMap": {"name": kernel}})
        return result

    def default_cluster_role(self) -> str:
        role = self.gateway.spec.cluster_role
        return role if role is not None else DEFAULT_GATEWAY_CLUSTER_ROLE

    def kernels(self) -> str:
        """Return the kernel whitelist in the gateway's quoted, comma separated form."""
        kernels = self.gateway.spec.kernels
        if kernels is None:
            return DEFAULT_KERNELS
        return ",".join(f"'{k}'" for k in kernels)

    def default_kernel(self) -> str:
        kernel = self.gateway.spec.default_kernel
        return kernel if kernel is not None else DEFAULT_KERNEL


class GatewayReconciler:
    """Makes sure the service account, role binding, deployment and service exist."""

    def __init__(
        self,
        client: Client,
        recorder: EventRecorder | None,
        instance: JupyterGateway | None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.generator = GatewayGenerator(client, instance)
        self.client = client
        self.recorder = recorder
        self.instance = instance
        self.log = logger or logging.getLogger(__name__)

    def reconcile(self) -> None:
        service_account_name = self._reconcile_rbac()
        self._reconcile_deployment(service_account_name)
        self._reconcile_service()

    def _event(self, reason: str, message: str) -> None:
        if self.recorder is not None:
            self.recorder.event(self.instance, EVENT_WARNING, reason, message)

    def _own(self, desired: JSON) -> None:
        try:
            set_controller_reference(self.instance, desired)
        except Exception:
            self.log.exception("Set controller reference error, requeuing the request")
            raise

    def _ensure(self, desired: JSON, what: str) -> JSON:
        """Create ``desired`` if missing; return what the cluster held before."""
        meta = desired["metadata"]
        key = ObjectKey(meta["namespace"], meta["name"])
        try:
            return self.client.get(desired["kind"], key)
        except NotFoundError:
            self.log.info("Creating %s %s/%s", what, key.namespace, key.name)
            try:
                self.client.create(desired)
            except ApiError:
                self.log.exception("Failed to create the %s %s", what, key.name)
                raise
            return {}
        except ApiError:
            self.log.exception("failed to get the expected %s %s", what, key.name)
            raise

    def _reconcile_rbac(self) -> str:
        service_account = self._reconcile_service_account()
        self._reconcile_role_binding(service_account)
        return service_account["metadata"]["name"]

    def _reconcile_service_account(self) -> JSON:
        desired = self.generator.desired_service_account()
        self._own(desired)
        self._ensure(desired, "serviceaccount")
        return desired

    def _reconcile_role_binding(self, service_account: JSON) -> None:
        desired = self.generator.desired_role_binding(service_account)
        self._own(desired)
        self._ensure(desired, "rolebinding")

    def _reconcile_service(self) -> None:
        desired = self.generator.desired_service()
        self._own(desired)
        self._ensure(desired, "service")

    def _reconcile_deployment(self, service_account_name: str) -> None:
        try:
            desired = self.generator.desired_deployment(service_account_name)
        except Exception as err:
            self._event("FailedToGenerate", str(err))
            raise
        self._own(desired)

        meta = desired["metadata"]
        key = ObjectKey(meta["namespace"], meta["name"])
        actual: JSON = {}
        try:
            actual = self.client.get("Deployment", key)
        except NotFoundError:
            self.log.info("Creating deployment %s/%s", key.namespace, key.name)
            try:
                self.client.create(desired)
            except ApiError as err:
                self.log.exception("Failed to create the deployment %s", key.name)
                self._event("FailedToCreate", str(err))
                raise
        except ApiError as err:
            self.log.exception("failed to get the expected deployment %s", key.name)
            self._event("FailedToGet", str(err))
            raise

        actual_status = actual.get("status") or {}
        if self.instance.status.deployment_status != actual_status:
            self.instance.status.deployment_status = copy.deepcopy(actual_status)
            try:
                self.client.update_status(self.instance)
            except ApiError as err:
                self.log.exception(
                    "failed to update status of jupytergateway %s/%s",
                    self.instance.namespace,
                    self.instance.name,
                )
                self._event("FailedToUpdateStatus", str(err))
                raise