"""
Services shared by the pipeline: cache, model transport, request queue
and usage tracking.
"""

from .cache import ContentCache
from .llm_client import HttpTransport, ModelRequest, ModelResponse, ModelTransport
from .request_queue import RequestQueue, RetryPolicy
from .usage_tracker import UsageTracker

__all__ = [
    "ContentCache",
    "HttpTransport",
    "ModelRequest",
    "ModelResponse",
    "ModelTransport",
    "RequestQueue",
    "RetryPolicy",
    "UsageTracker",
]
