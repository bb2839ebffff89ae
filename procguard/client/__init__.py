"""
The client package.
The public `Client` facade and the helpers that describe the current process.
"""
from .facade import Client

__all__ = ["Client"]
