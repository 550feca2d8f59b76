"""Resource types, reconcilers, controllers and a kernel launcher for Jupyter on Kubernetes."""

__version__ = "0.1.0"
__all__ = ["__version__"]