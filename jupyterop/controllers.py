"""Controllers that turn a reconcile request into work on one custom resource."""

from __future__ import annotations

import logging
from typing import Any

from .api import (
    JupyterGateway,
    JupyterKernel,
    JupyterKernelSpec,
    JupyterKernelTemplate,
    _Resource,
)
from .gateway import GatewayReconciler
from .kernel import KernelReconciler
from .kernelspec import KernelSpecReconciler
from .kube import ApiError, Client, EventRecorder, NotFoundError, ObjectKey

Request = ObjectKey


class _Controller:
    """Shared plumbing: the client, the event recorder and the logger."""

    resource: type[_Resource] = _Resource

    def __init__(
        self,
        client: Client,
        recorder: EventRecorder | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.recorder = recorder
        self.log = logger or logging.getLogger(f"{__name__}.{self.resource.kind}")

    def _fetch(self, request: ObjectKey) -> Any:
        """Return a private copy of the requested object, or None if it is gone.

        Objects that were deleted need no work: what they created is
        garbage collected through owner references.
        """
        try:
            original = self.client.get(self.resource, request)
        except NotFoundError:
            return None
        except ApiError:
            self.log.exception(
                "Failed to get %s %s/%s, requeuing the request",
                self.resource.kind,
                request.namespace,
                request.name,
            )
            raise
        return original.deep_copy()


class JupyterGatewayController(_Controller):
    """Reconciles JupyterGateway objects."""

    resource = JupyterGateway

    def reconcile(self, request: ObjectKey) -> None:
        instance = self._fetch(request)
        if instance is None:
            return
        GatewayReconciler(self.client, self.recorder, instance, self.log).reconcile()


class JupyterKernelController(_Controller):
    """Reconciles JupyterKernel objects."""

    resource = JupyterKernel

    def reconcile(self, request: ObjectKey) -> None:
        instance = self._fetch(request)
        if instance is None:
            return
        KernelReconciler(self.client, self.recorder, instance, self.log).reconcile()


class JupyterKernelSpecController(_Controller):
    """Reconciles JupyterKernelSpec objects."""

    resource = JupyterKernelSpec

    def reconcile(self, request: ObjectKey) -> None:
        instance = self._fetch(request)
        if instance is None:
            return
        KernelSpecReconciler(self.client, self.recorder, instance, self.log).reconcile()


class JupyterKernelTemplateController(_Controller):
    """Watches JupyterKernelTemplate objects.

    Templates are read by the kernel launcher when a kernel starts, so
    there is nothing to build for them here.
    """

    resource = JupyterKernelTemplate

    def reconcile(self, request: ObjectKey) -> None:
        self.log.debug(
            "Observed jupyterkerneltemplate %s/%s", request.namespace, request.name
        )