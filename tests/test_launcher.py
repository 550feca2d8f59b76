import copy

import pytest

from jupyterop.api import (
    JupyterGateway,
    JupyterKernel,
    JupyterKernelTemplate,
    JupyterKernelTemplateSpec,
    ObjectMeta,
)
from jupyterop.kube import MemoryClient, NotFoundError, ObjectKey
from jupyterop.launcher import LaunchOptions, build_kernel, launch, main, parse_args

NS = "default"

ENVIRON = {
    "EG_NAME": "gw",
    "EG_NAMESPACE": NS,
    "KERNEL_IMAGE": "kernel-image",
    "KERNEL_POD_NAME": "pod-1",
    "KERNEL_NAMESPACE": NS,
    "KERNEL_LANGUAGE": "python",
    "KERNEL_NAME": "python_kubernetes",
    "KERNEL_USERNAME": "alice",
}


def _template(pod_template):
    return JupyterKernelTemplate(
        metadata=ObjectMeta(name="tpl", namespace=NS),
        spec=JupyterKernelTemplateSpec(template=pod_template),
    )


def _pod_template(labels=None):
    metadata = {"name": "from-template"}
    if labels is not None:
        metadata["labels"] = labels
    return {
        "metadata": metadata,
        "spec": {
            "containers": [
                {"name": "kernel", "image": "old", "env": [{"name": "A", "value": "1"}]}
            ]
        },
    }


def _options(**overrides):
    values = dict(
        kernel_id="kid",
        port_range="0..0",
        response_address="10.0.0.1:8877",
        public_key="placeholder",
        spark_context_init_mode="none",
        kernel_template_name="tpl",
        kernel_template_namespace=NS,
    )
    values.update(overrides)
    return LaunchOptions(**values)


def test_parse_args_reads_all_flags():
    options = parse_args(
        [
            "--RemoteProcessProxy.kernel-id",
            "kid",
            "--RemoteProcessProxy.port-range=0..0",
            "--RemoteProcessProxy.response-address",
            "10.0.0.1:8877",
            "--RemoteProcessProxy.public-key",
            "placeholder",
            "--RemoteProcessProxy.spark-context-initialization-mode",
            "none",
            "--kernel-template-name",
            "tpl",
            "--kernel-template-namespace",
            NS,
            "--verbose",
        ]
    )
    assert options == _options(verbose=True)


def test_parse_args_defaults():
    assert parse_args([]) == LaunchOptions()


def test_parse_args_rejects_unknown_flag():
    with pytest.raises(SystemExit):
        parse_args(["--no-such-flag"])


def test_build_kernel_sets_env_image_and_labels():
    pod_template = _pod_template(labels={"app": "k"})
    template = _template(pod_template)
    original = copy.deepcopy(pod_template)

    kernel = build_kernel(template, _options(), ENVIRON)

    assert kernel.metadata.name == "pod-1"
    assert kernel.metadata.namespace == NS
    assert kernel.metadata.labels["kernel_id"] == "kid"
    pod = kernel.spec.template
    assert pod["metadata"]["labels"] == {"app": "k", "kernel_id": "kid"}
    container = pod["spec"]["containers"][0]
    assert container["image"] == "kernel-image"
    assert [e["name"] for e in container["env"]] == [
        "A",
        "EG_PORT_RANGE",
        "EG_RESPONSE_ADDRESS",
        "EG_PUBLIC_KEY",
        "KERNEL_ID",
        "KERNEL_LANGUAGE",
        "KERNEL_NAME",
        "KERNEL_NAMESPACE",
        "KERNEL_SPARK_CONTEXT_INIT_MODE",
        "KERNEL_USERNAME",
    ]
    values = {e["name"]: e["value"] for e in container["env"]}
    assert values["KERNEL_ID"] == "kid"
    assert values["KERNEL_USERNAME"] == "alice"
    assert values["EG_RESPONSE_ADDRESS"] == "10.0.0.1:8877"
    assert template.spec.template == original


def test_build_kernel_without_template_labels_keeps_kernel_labels_clean():
    environ = {k: v for k, v in ENVIRON.items() if k != "KERNEL_IMAGE"}
    kernel = build_kernel(_template(_pod_template()), _options(), environ)
    assert kernel.spec.template["metadata"]["labels"] == {"kernel_id": "kid"}
    assert "kernel_id" not in kernel.metadata.labels
    assert kernel.spec.template["spec"]["containers"][0]["image"] == "old"


def test_build_kernel_requires_containers():
    with pytest.raises(ValueError):
        build_kernel(_template({"spec": {"containers": []}}), _options(), ENVIRON)


def test_build_kernel_requires_pod_template():
    with pytest.raises(ValueError):
        build_kernel(_template(None), _options(), ENVIRON)


def _cluster(pod_template=None, gateway_namespace=NS):
    client = MemoryClient()
    client.create(_template(pod_template or _pod_template()))
    gateway = client.create(
        JupyterGateway(metadata=ObjectMeta(name="gw", namespace=gateway_namespace))
    )
    return client, gateway


def test_launch_creates_kernel_owned_by_gateway():
    client, gateway = _cluster()
    created = launch(client, _options(), ENVIRON)

    stored = client.get(JupyterKernel, ObjectKey(NS, "pod-1"))
    assert stored.metadata.uid == created.metadata.uid
    owner = stored.metadata.owner_references[0]
    assert owner["kind"] == "JupyterGateway"
    assert owner["name"] == "gw"
    assert owner["uid"] == gateway.metadata.uid
    assert owner["controller"] is True
    assert stored.spec.template["metadata"]["labels"]["kernel_id"] == "kid"


@pytest.mark.parametrize("missing", ["EG_NAME", "EG_NAMESPACE"])
def test_launch_requires_gateway_env(missing):
    client, _ = _cluster()
    environ = {k: v for k, v in ENVIRON.items() if k != missing}
    with pytest.raises(ValueError, match="gateway name or namespace"):
        launch(client, _options(), environ)


@pytest.mark.parametrize(
    "override", [{"kernel_template_name": ""}, {"kernel_template_namespace": ""}]
)
def test_launch_requires_template_flags(override):
    client, _ = _cluster()
    with pytest.raises(ValueError, match="template's name or namespace"):
        launch(client, _options(**override), ENVIRON)


def test_launch_missing_template_raises_not_found():
    client, _ = _cluster()
    with pytest.raises(NotFoundError):
        launch(client, _options(kernel_template_name="other"), ENVIRON)


def test_launch_missing_gateway_raises_not_found():
    client, _ = _cluster()
    environ = dict(ENVIRON, EG_NAME="other")
    with pytest.raises(NotFoundError):
        launch(client, _options(), environ)
    with pytest.raises(NotFoundError):
        client.get(JupyterKernel, ObjectKey(NS, "pod-1"))


def test_launch_rejects_cross_namespace_owner():
    client, _ = _cluster(gateway_namespace="gateways")
    environ = dict(ENVIRON, EG_NAMESPACE="gateways")
    with pytest.raises(ValueError):
        launch(client, _options(), environ)


def test_main_fails_without_gateway_env(monkeypatch, capsys):
    monkeypatch.delenv("EG_NAME", raising=False)
    monkeypatch.delenv("EG_NAMESPACE", raising=False)
    status = main(["--kernel-template-name", "tpl", "--kernel-template-namespace", NS])
    assert status == 1
    assert "gateway name or namespace" in capsys.readouterr().err