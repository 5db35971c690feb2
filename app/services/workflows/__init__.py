"""
State machines for capability requests and reviewed content.
"""

from .requests import RequestWorkflowEngine
from .review import ReviewWorkflowEngine

__all__ = [
    "RequestWorkflowEngine",
    "ReviewWorkflowEngine",
]
