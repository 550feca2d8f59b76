import json

import pytest

from jupyterop.api import (
    JupyterGateway,
    JupyterGatewaySpec,
    JupyterKernel,
    JupyterKernelCRDSpec,
    JupyterKernelSpec,
    JupyterKernelSpecSpec,
    JupyterKernelTemplate,
    JupyterKernelTemplateSpec,
    ObjectMeta,
)
from jupyterop.controllers import (
    JupyterGatewayController,
    JupyterKernelController,
    JupyterKernelSpecController,
    JupyterKernelTemplateController,
)
from jupyterop.kube import ApiError, EventRecorder, MemoryClient, NotFoundError, ObjectKey

NS = "default"


class _FailingClient:
    def get(self, kind, key):
        raise ApiError("server unavailable", 503)


def _meta(name):
    return ObjectMeta(name=name, namespace=NS)


def test_gateway_controller_creates_all_objects():
    client = MemoryClient()
    stored = client.create(JupyterGateway(metadata=_meta("gw"), spec=JupyterGatewaySpec()))
    key = ObjectKey(NS, "gw")

    JupyterGatewayController(client, EventRecorder()).reconcile(key)

    for kind in ("ServiceAccount", "RoleBinding", "Deployment", "Service"):
        obj = client.get(kind, key)
        owner = obj["metadata"]["ownerReferences"][0]
        assert owner["kind"] == "JupyterGateway"
        assert owner["uid"] == stored.metadata.uid
        assert owner["controller"] is True

    deployment = client.get("Deployment", key)
    env = deployment["spec"]["template"]["spec"]["containers"][0]["env"]
    assert {"name": "EG_NAME", "value": "gw"} in env
    assert deployment["spec"]["template"]["spec"]["serviceAccountName"] == "gw"


def test_gateway_controller_ignores_missing_object():
    client = MemoryClient()
    JupyterGatewayController(client).reconcile(ObjectKey(NS, "absent"))
    with pytest.raises(NotFoundError):
        client.get("Deployment", ObjectKey(NS, "absent"))


def test_gateway_controller_reports_missing_kernel_spec():
    client = MemoryClient()
    client.create(JupyterGateway(metadata=_meta("gw"), spec=JupyterGatewaySpec(kernels=["py"])))
    recorder = EventRecorder()
    with pytest.raises(NotFoundError):
        JupyterGatewayController(client, recorder).reconcile(ObjectKey(NS, "gw"))
    assert [e.reason for e in recorder.events] == ["FailedToGenerate"]
    assert client.get("ServiceAccount", ObjectKey(NS, "gw"))["metadata"]["name"] == "gw"


def test_gateway_controller_mounts_kernel_specs():
    client = MemoryClient()
    client.create(JupyterKernelSpec(metadata=_meta("py"), spec=JupyterKernelSpecSpec()))
    client.create(JupyterGateway(metadata=_meta("gw"), spec=JupyterGatewaySpec(kernels=["py"])))

    JupyterGatewayController(client, EventRecorder()).reconcile(ObjectKey(NS, "gw"))

    pod = client.get("Deployment", ObjectKey(NS, "gw"))["spec"]["template"]["spec"]
    assert pod["volumes"] == [{"name": "py", "configMap": {"name": "py"}}]
    mounts = pod["containers"][0]["volumeMounts"]
    assert [m["name"] for m in mounts] == ["py"]
    assert all(m["readOnly"] for m in mounts)


@pytest.mark.parametrize(
    "controller_cls",
    [JupyterGatewayController, JupyterKernelController, JupyterKernelSpecController],
)
def test_read_errors_are_raised(controller_cls):
    with pytest.raises(ApiError) as info:
        controller_cls(_FailingClient()).reconcile(ObjectKey(NS, "x"))
    assert info.value.status == 503


def test_kernel_controller_creates_deployment_with_kernel_id_label():
    client = MemoryClient()
    template = {
        "spec": {
            "containers": [
                {"name": "kernel", "image": "img", "env": [{"name": "KERNEL_ID", "value": "abc"}]}
            ]
        }
    }
    client.create(JupyterKernel(metadata=_meta("k1"), spec=JupyterKernelCRDSpec(template=template)))

    JupyterKernelController(client).reconcile(ObjectKey(NS, "k1"))

    deployment = client.get("Deployment", ObjectKey(NS, "k1"))
    labels = deployment["spec"]["template"]["metadata"]["labels"]
    assert labels["kernel_id"] == "abc"
    assert labels["kernel"] == "k1"
    assert deployment["spec"]["selector"]["matchLabels"] == {"namespace": NS, "kernel": "k1"}
    assert deployment["metadata"]["ownerReferences"][0]["kind"] == "JupyterKernel"


def test_kernel_controller_ignores_missing_object():
    client = MemoryClient()
    JupyterKernelController(client).reconcile(ObjectKey(NS, "gone"))
    with pytest.raises(NotFoundError):
        client.get("Deployment", ObjectKey(NS, "gone"))


def test_kernel_spec_controller_creates_configmap():
    client = MemoryClient()
    spec = JupyterKernelSpecSpec(
        language="python",
        command=["python"],
        template={"name": "tpl", "namespace": NS},
    )
    client.create(JupyterKernelSpec(metadata=_meta("py"), spec=spec))

    JupyterKernelSpecController(client).reconcile(ObjectKey(NS, "py"))

    configmap = client.get("ConfigMap", ObjectKey(NS, "py"))
    document = json.loads(configmap["data"]["kernel.json"])
    assert document["argv"] == [
        "python",
        "--kernel-template-name",
        "tpl",
        "--kernel-template-namespace",
        NS,
    ]
    assert document["metadata"]["process_proxy"]["class_name"] == (
        "enterprise_gateway.services.processproxies.k8s.KubernetesProcessProxy"
    )
    assert configmap["metadata"]["labels"] == {"namespace": NS, "kernelspec": "py"}


def test_kernel_spec_controller_rejects_spec_without_template():
    client = MemoryClient()
    client.create(JupyterKernelSpec(metadata=_meta("py"), spec=JupyterKernelSpecSpec()))
    with pytest.raises(ValueError):
        JupyterKernelSpecController(client).reconcile(ObjectKey(NS, "py"))
    with pytest.raises(NotFoundError):
        client.get("ConfigMap", ObjectKey(NS, "py"))


def test_kernel_template_controller_changes_nothing():
    client = MemoryClient()
    pod_template = {"spec": {"containers": [{"name": "kernel"}]}}
    client.create(
        JupyterKernelTemplate(
            metadata=_meta("tpl"), spec=JupyterKernelTemplateSpec(template=pod_template)
        )
    )
    result = JupyterKernelTemplateController(client).reconcile(ObjectKey(NS, "tpl"))
    assert result is None
    assert client.get(JupyterKernelTemplate, ObjectKey(NS, "tpl")).spec.template == pod_template
    with pytest.raises(NotFoundError):
        client.get("Deployment", ObjectKey(NS, "tpl"))