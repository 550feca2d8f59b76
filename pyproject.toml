[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "jupyterop"
version = "0.1.0"
description = "Reconciliation logic and a kernel launcher for Jupyter gateways, kernel specs and remote kernels on Kubernetes"
requires-python = ">=3.10"
keywords = ["jupyter", "kubernetes", "operator", "enterprise-gateway", "kernel"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
kubeflow-launcher = "jupyterop.launcher:main"

[tool.hatch.build.targets.wheel]
packages = ["jupyterop"]

[tool.pytest.ini_options]
addopts = "-ra"
