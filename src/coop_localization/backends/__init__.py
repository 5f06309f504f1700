"""
Graph optimization back-ends.
"""
from .backend import GraphBackend

__all__ = ["GraphBackend"]
