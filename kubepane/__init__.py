"""Kubernetes cluster browsing core: connection profiles and resource aggregators."""

__version__ = "0.1.0"
