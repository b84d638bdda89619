"""Kubernetes manifest helpers: kinds, report labels, spec hashing, owner resolution and report metrics."""

__version__ = "0.1.0"