"""Generates and reconciles the config map holding a kernel's kernel.json."""

from __future__ import annotations

import json
import logging
from typing import Any

from .api import JupyterKernelSpec
from .kube import Client, EventRecorder, NotFoundError, ObjectKey, set_controller_reference

LABEL_KERNEL_SPEC = "kernelspec"
LABEL_NS = "namespace"

FILE_NAME = "kernel.json"
DEFAULT_CLASS_NAME = "enterprise_gateway.services.processproxies.k8s.KubernetesProcessProxy"

KEY_KERNEL_TEMPLATE_NAME = "--kernel-template-name"
KEY_KERNEL_TEMPLATE_NAMESPACE = "--kernel-template-namespace"


def _go_json(value: Any) -> str:
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return text.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


class KernelSpecGenerator:
    """Builds the desired objects for a JupyterKernelSpec."""

    def __init__(self, kernel_spec: JupyterKernelSpec | None) -> None:
        if kernel_spec is None:
            raise ValueError("got None when initializing generator")
        self.kernel_spec = kernel_spec

    def labels(self) -> dict[str, str]:
        return {
            LABEL_NS: self.kernel_spec.namespace,
            LABEL_KERNEL_SPEC: self.kernel_spec.name,
        }

    def desired_json(self) -> str:
        """Return the kernel.json content for this kernel spec."""
        spec = self.kernel_spec.spec
        if spec.template is None:
            raise ValueError("kernel spec has no template reference")
        config: dict[str, Any] = {}
        if spec.image:
            config["image_name"] = spec.image
        config_doc: dict[str, Any] = {}
        if spec.language:
            config_doc["language"] = spec.language
        if spec.display_name:
            config_doc["display_name"] = spec.display_name
        config_doc["metadata"] = {
            "process_proxy": {
                "class_name": spec.class_name or DEFAULT_CLASS_NAME,
                "config": config,
            }
        }
        config_doc["argv"] = [
            *spec.command,
            KEY_KERNEL_TEMPLATE_NAME,
            spec.template.get("name", ""),
            KEY_KERNEL_TEMPLATE_NAMESPACE,
            spec.template.get("namespace", ""),
        ]
        return _go_json(config_doc)

    def desired_configmap(self) -> dict[str, Any]:
        """Return the config map without an owner reference."""
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "namespace": self.kernel_spec.namespace,
                "name": self.kernel_spec.name,
                "labels": self.labels(),
            },
            "data": {FILE_NAME: self.desired_json()},
        }


class KernelSpecReconciler:
    """Makes sure the config map of a kernel spec exists."""

    def __init__(
        self,
        client: Client,
        recorder: EventRecorder | None,
        instance: JupyterKernelSpec | None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.generator = KernelSpecGenerator(instance)
        self.client = client
        self.recorder = recorder
        self.instance = instance
        self.log = logger or logging.getLogger(__name__)

    def reconcile(self) -> None:
        desired = self.generator.desired_configmap()
        set_controller_reference(self.instance, desired)
        meta = desired["metadata"]
        try:
            self.client.get("ConfigMap", ObjectKey(meta["namespace"], meta["name"]))
        except NotFoundError:
            self.log.info("Creating configmap %s/%s", meta["namespace"], meta["name"])
            self.client.create(desired)