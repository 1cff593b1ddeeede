"""
Core Module

Cross-cutting infrastructure shared by the service.
"""

from .logging import bind_call_context, setup_logging, unbind_call_context

__all__ = [
    "setup_logging",
    "bind_call_context",
    "unbind_call_context",
]
