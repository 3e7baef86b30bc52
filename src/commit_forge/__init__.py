"""
Commit Forge

Turns raw diff text into token-bounded model requests and a commit message.
"""

from .config import PipelineConfig
from .errors import CommitForgeError
from .pipeline.orchestrator import CommitMessagePipeline, GenerationResult, PreparedDiff

__version__ = "0.1.0"

__all__ = [
    "CommitForgeError",
    "CommitMessagePipeline",
    "GenerationResult",
    "PipelineConfig",
    "PreparedDiff",
]
