# jupyterop

Reconciliation logic for running Jupyter on Kubernetes, built around custom
resources in the `kubeflow.tkestack.io/v1alpha1` API group: enterprise
gateways, kernel specs, kernel templates and remote kernels, plus the command
the gateway runs to launch a kernel.

## Install

    pip install jupyterop

With the test dependencies:

    pip install "jupyterop[test]"

## Modules

- `jupyterop.api` – the resource types `JupyterGateway`, `JupyterKernel`,
  `JupyterKernelSpec`, `JupyterKernelTemplate` and `JupyterNotebook`, their
  spec and status classes, `ObjectMeta`, and the enums `LogLevel`,
  `JupyterKernelConditionType` and `ModeJupyterAuth`. Each resource has
  `to_dict`, `from_dict` and `deep_copy`. Embedded Kubernetes structures (pod
  templates, resource requirements, object references, env vars, deployment
  status) are plain dictionaries.
- `jupyterop.kube` – a small client layer. `Client` is the interface
  (`get`, `create`, `update`, `update_status`, `delete`); `MemoryClient` keeps
  objects in memory; `HttpClient` talks to an API server over HTTPS, and
  `HttpClient.in_cluster()` builds one from the service account mounted into a
  pod. Errors are `ApiError`, `NotFoundError` and `AlreadyExistsError`.
  Objects are identified by `ObjectKey(namespace, name)`. `EventRecorder`
  collects `Event`s in its `events` list and logs them.
  `set_controller_reference(owner, obj)` adds a controller owner reference to
  `obj`.
- `jupyterop.kernelspec` – `KernelSpecGenerator` builds the ConfigMap holding
  `kernel.json`; `KernelSpecReconciler` creates it if it is missing.
- `jupyterop.kernel` – `KernelGenerator` builds the Deployment that runs a
  kernel's pod template (copying `KERNEL_ID` from the first container's env
  into the `kernel_id` pod label); `KernelReconciler` creates it if missing.
- `jupyterop.gateway` – `GatewayGenerator` builds the gateway's
  ServiceAccount, RoleBinding, Deployment and Service; `GatewayReconciler`
  creates the missing ones and copies the Deployment's status into the
  gateway's status.
- `jupyterop.controllers` – `JupyterGatewayController`,
  `JupyterKernelController`, `JupyterKernelSpecController` and
  `JupyterKernelTemplateController`. Each `reconcile(request)` takes an
  `ObjectKey`, returns quietly if the object is gone, and otherwise runs the
  matching reconciler. The kernel template controller only logs: templates are
  read by the launcher.
- `jupyterop.launcher` – the kernel launcher (`parse_args`, `build_kernel`,
  `launch`, `main`).

## Reconciling a gateway

```python
from jupyterop.api import (
    JupyterGateway, JupyterGatewaySpec, JupyterKernelSpec,
    JupyterKernelSpecSpec, ObjectMeta,
)
from jupyterop.controllers import JupyterGatewayController, JupyterKernelSpecController
from jupyterop.kube import EventRecorder, MemoryClient, ObjectKey

client = MemoryClient()
client.create(JupyterKernelSpec(
    metadata=ObjectMeta(name="python-kubernetes", namespace="default"),
    spec=JupyterKernelSpecSpec(
        language="python",
        display_name="Python on Kubernetes",
        image="ghcr.io/skai-x/jupyter-kernel-py:2.6.0",
        template={"name": "python-template", "namespace": "default"},
    ),
))
client.create(JupyterGateway(
    metadata=ObjectMeta(name="gateway", namespace="default"),
    spec=JupyterGatewaySpec(kernels=["python-kubernetes"]),
))

recorder = EventRecorder()
JupyterKernelSpecController(client, recorder).reconcile(
    ObjectKey("default", "python-kubernetes"))
JupyterGatewayController(client, recorder).reconcile(ObjectKey("default", "gateway"))

deployment = client.get("Deployment", ObjectKey("default", "gateway"))
```

A kernel spec must carry a `template` reference; without one,
`KernelSpecGenerator.desired_json` raises `ValueError`. The gateway's
Deployment mounts one ConfigMap per listed kernel spec, and reconciling it
raises the client's `NotFoundError` if a listed kernel spec does not exist.

## Launching a kernel

The gateway runs the launcher with the kernel template to use:

    kubeflow-launcher \
        --RemoteProcessProxy.kernel-id 1234 \
        --RemoteProcessProxy.response-address 10.0.0.1:8877 \
        --kernel-template-name python-template \
        --kernel-template-namespace default

The gateway is found from `EG_NAME` and `EG_NAMESPACE`; the kernel's name and
namespace come from `KERNEL_POD_NAME` and `KERNEL_NAMESPACE`, and
`KERNEL_IMAGE`, if set, replaces the first container's image. The launcher
reads the `JupyterKernelTemplate`, labels the pod template with `kernel_id`,
appends the `EG_*` and `KERNEL_*` environment variables to the first
container, makes the gateway the kernel's controller, and creates the
`JupyterKernel`. It connects with `HttpClient.in_cluster()`, so it works only
inside a pod. On an error it prints the message to stderr and exits with
status 1.

`launch(client, options, environ)` does the same against any `Client`, which
makes it usable with `MemoryClient`.

## What it does not do

- There is no operator process: nothing watches the cluster or queues
  requests. Controllers reconcile one request when called.
- `JupyterNotebook` is a resource type only; there is no notebook reconciler.
- Reconcilers create missing objects; they do not update or delete existing
  ones.
- `HttpClient` has no kubeconfig support; outside a cluster, construct it with
  a base URL and a bearer token yourself.