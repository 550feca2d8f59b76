"""Kernel launcher: creates a JupyterKernel from a kernel template.

The enterprise gateway runs this command when a kernel has to start.
"""

from __future__ import annotations

import argparse
import copy
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .api import (
    JupyterGateway,
    JupyterKernel,
    JupyterKernelCRDSpec,
    JupyterKernelTemplate,
    ObjectMeta,
)
from .kube import ApiError, Client, HttpClient, ObjectKey, set_controller_reference

ENV_KERNEL_POD_NAME = "KERNEL_POD_NAME"
ENV_KERNEL_IMAGE = "KERNEL_IMAGE"
ENV_KERNEL_NAMESPACE = "KERNEL_NAMESPACE"
ENV_KERNEL_ID = "KERNEL_ID"
ENV_KERNEL_LANGUAGE = "KERNEL_LANGUAGE"
ENV_KERNEL_NAME = "KERNEL_NAME"
ENV_KERNEL_SPARK = "KERNEL_SPARK_CONTEXT_INIT_MODE"
ENV_KERNEL_USERNAME = "KERNEL_USERNAME"

ENV_PORT_RANGE = "EG_PORT_RANGE"
ENV_RESPONSE_ADDRESS = "EG_RESPONSE_ADDRESS"
ENV_PUBLIC_KEY = "EG_PUBLIC_KEY"
ENV_GATEWAY_NAME = "EG_NAME"
ENV_GATEWAY_NAMESPACE = "EG_NAMESPACE"

LABEL_KERNEL_ID = "kernel_id"

log = logging.getLogger(__name__)


@dataclass
class LaunchOptions:
    """Command-line options of the launcher."""

    kernel_id: str = ""
    port_range: str = ""
    response_address: str = ""
    public_key: str = ""
    spark_context_init_mode: str = ""
    kernel_template_name: str = ""
    kernel_template_namespace: str = ""
    verbose: bool = False
    toggle: bool = False


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubeflow-launcher",
        description="Launch kernels in the jupyter enterprise gateway",
        allow_abbrev=False,
    )
    parser.add_argument("-t", "--toggle", action="store_true", help="Help message for toggle")
    string_flags = [
        ("--RemoteProcessProxy.kernel-id", "kernel_id", "kernel id"),
        ("--RemoteProcessProxy.port-range", "port_range", "port range"),
        ("--RemoteProcessProxy.response-address", "response_address", "response address"),
        ("--RemoteProcessProxy.public-key", "public_key", "public key"),
        (
            "--RemoteProcessProxy.spark-context-initialization-mode",
            "spark_context_init_mode",
            "spark context init mode",
        ),
        ("--kernel-template-name", "kernel_template_name", "kernel template CRD name"),
        (
            "--kernel-template-namespace",
            "kernel_template_namespace",
            "kernel template CRD namespace",
        ),
    ]
    for flag, dest, help_text in string_flags:
        parser.add_argument(flag, dest=dest, default="", help=help_text)
    parser.add_argument("--verbose", action="store_true", help="Set verbose")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> LaunchOptions:
    """Parse the launcher's command line."""
    namespace = _parser().parse_args(argv)
    return LaunchOptions(**vars(namespace))


def build_kernel(
    template: JupyterKernelTemplate,
    options: LaunchOptions,
    environ: Mapping[str, str],
) -> JupyterKernel:
    """Build the JupyterKernel described by ``template``, the options and the environment."""
    if template.spec.template is None:
        raise ValueError("the kernel template has no pod template")
    pod_template = copy.deepcopy(template.spec.template)
    kernel = JupyterKernel(
        metadata=ObjectMeta.from_dict(pod_template.get("metadata")),
        spec=JupyterKernelCRDSpec(template=pod_template),
    )

    containers = (pod_template.get("spec") or {}).get("containers") or []
    image = environ.get(ENV_KERNEL_IMAGE, "")
    if image and containers:
        containers[0]["image"] = image

    kernel.metadata.name = environ.get(ENV_KERNEL_POD_NAME, "")
    kernel.metadata.namespace = environ.get(ENV_KERNEL_NAMESPACE, "")

    pod_meta = pod_template.setdefault("metadata", {})
    # A kernel takes its labels from the template; when the template has
    # labels, the kernel id label ends up on the kernel as well.
    shares_labels = bool(pod_meta.get("labels"))
    labels = pod_meta.get("labels") or {}
    labels[LABEL_KERNEL_ID] = options.kernel_id
    pod_meta["labels"] = labels
    if shares_labels:
        kernel.metadata.labels[LABEL_KERNEL_ID] = options.kernel_id

    if not containers:
        raise ValueError("the kernel template has no containers")
    extra_env = [
        (ENV_PORT_RANGE, options.port_range),
        (ENV_RESPONSE_ADDRESS, options.response_address),
        (ENV_PUBLIC_KEY, options.public_key),
        (ENV_KERNEL_ID, options.kernel_id),
        (ENV_KERNEL_LANGUAGE, environ.get(ENV_KERNEL_LANGUAGE, "")),
        (ENV_KERNEL_NAME, environ.get(ENV_KERNEL_NAME, "")),
        (ENV_KERNEL_NAMESPACE, environ.get(ENV_KERNEL_NAMESPACE, "")),
        (ENV_KERNEL_SPARK, options.spark_context_init_mode),
        (ENV_KERNEL_USERNAME, environ.get(ENV_KERNEL_USERNAME, "")),
    ]
    containers[0]["env"] = [
        *(containers[0].get("env") or []),
        *({"name": name, "value": value} for name, value in extra_env),
    ]
    return kernel


def _targets(options: LaunchOptions, environ: Mapping[str, str]) -> tuple[ObjectKey, ObjectKey]:
    """Return the keys of the gateway and of the kernel template."""
    gateway_namespace = environ.get(ENV_GATEWAY_NAMESPACE, "")
    gateway_name = environ.get(ENV_GATEWAY_NAME, "")
    if not gateway_name or not gateway_namespace:
        raise ValueError("failed to get the gateway name or namespace from the env var")
    if not options.kernel_template_name or not options.kernel_template_namespace:
        raise ValueError("failed to get the template's name or namespace")
    return (
        ObjectKey(gateway_namespace, gateway_name),
        ObjectKey(options.kernel_template_namespace, options.kernel_template_name),
    )


def launch(
    client: Client,
    options: LaunchOptions,
    environ: Mapping[str, str],
) -> JupyterKernel:
    """Create the kernel, owned by the gateway, and return what the cluster stored."""
    gateway_key, template_key = _targets(options, environ)
    log.info(
        "Launching the kernel kernelID=%s responseAddr=%s template=%s/%s gateway=%s/%s",
        options.kernel_id,
        options.response_address,
        template_key.namespace,
        template_key.name,
        gateway_key.namespace,
        gateway_key.name,
    )
    template = client.get(JupyterKernelTemplate, template_key)
    kernel = build_kernel(template, options, environ)
    gateway = client.get(JupyterGateway, gateway_key)
    set_controller_reference(gateway, kernel)
    log.info("Creating the kernel %s/%s", kernel.namespace, kernel.name)
    return client.create(kernel)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the launcher; return the process exit status."""
    options = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if options.verbose else logging.INFO)
    environ = os.environ
    try:
        _targets(options, environ)
        client = HttpClient.in_cluster()
        launch(client, options, environ)
    except (ApiError, ValueError, RuntimeError, OSError) as err:
        print(err, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())