"""Generates and reconciles the deployment that runs a Jupyter kernel."""

from __future__ import annotations

import copy
import logging
from typing import Any

from .api import JupyterKernel
from .kube import Client, EventRecorder, NotFoundError, ObjectKey, set_controller_reference

LABEL_NS = "namespace"
LABEL_KERNEL = "kernel"
ENV_KERNEL_ID = "KERNEL_ID"
LABEL_KERNEL_ID = "kernel_id"


class KernelGenerator:
    """Builds the desired deployment for a JupyterKernel."""

    def __init__(self, kernel: JupyterKernel | None) -> None:
        if kernel is None:
            raise ValueError("got None when initializing generator")
        self.kernel = kernel

    def labels(self) -> dict[str, str]:
        return {LABEL_NS: self.kernel.namespace, LABEL_KERNEL: self.kernel.name}

    def desired_deployment(self) -> dict[str, Any]:
        """Return the deployment running the kernel's pod template."""
        labels = self.labels()
        template = copy.deepcopy(self.kernel.spec.template)
        metadata = template.setdefault("metadata", {})
        pod_labels = metadata.get("labels") or {}
        pod_labels.update(labels)
        metadata["labels"] = pod_labels
        _copy_kernel_id(template)
        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {
                "name": self.kernel.name,
                "namespace": self.kernel.namespace,
                "labels": dict(labels),
            },
            "spec": {
                "template": template,
                "selector": {"matchLabels": dict(labels)},
            },
        }


def _copy_kernel_id(template: dict[str, Any]) -> None:
    """Copy KERNEL_ID from the first container's env into the pod labels."""
    containers = (template.get("spec") or {}).get("containers") or []
    if not containers:
        return
    for env in containers[0].get("env") or []:
        if env.get("name") == ENV_KERNEL_ID:
            metadata = template.setdefault("metadata", {})
            labels = metadata.get("labels") or {}
            labels[LABEL_KERNEL_ID] = env.get("value", "")
            metadata["labels"] = labels
            return


class KernelReconciler:
    """Makes sure the deployment of a kernel exists."""

    def __init__(
        self,
        client: Client,
        recorder: EventRecorder | None,
        instance: JupyterKernel | None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.generator = KernelGenerator(instance)
        self.client = client
        self.recorder = recorder
        self.instance = instance
        self.log = logger or logging.getLogger(__name__)

    def reconcile(self) -> None:
        desired = self.generator.desired_deployment()
        set_controller_reference(self.instance, desired)
        meta = desired["metadata"]
        try:
            self.client.get("Deployment", ObjectKey(meta["namespace"], meta["name"]))
        except NotFoundError:
            self.log.info("Creating deployment %s/%s", meta["namespace"], meta["name"])
            self.client.create(desired)