"""
Checkpoint orchestration: one gated comprehension question per lesson section.
"""

from .cache import CacheEntry, CheckpointCache, JsonFileCache, MemoryCache, cache_key
from .models import (
    CheckpointError,
    CheckpointIdle,
    CheckpointIntent,
    CheckpointLoading,
    CheckpointPayload,
    CheckpointReady,
    CheckpointSource,
    CheckpointState,
    CheckpointStatus,
    FallbackReason,
    intent_for_section,
)
from .orchestrator import CheckpointOrchestrator, TextGenerator
from .remediation import QuickReview, RemediationState, RemediationTrigger, build_quick_review
from .retry import GenerationResult, RetryPolicy

__all__ = [
    "CheckpointOrchestrator",
    "TextGenerator",
    "CheckpointIntent",
    "CheckpointPayload",
    "intent_for_section",
    "CheckpointStatus",
    "CheckpointSource",
    "FallbackReason",
    "CheckpointState",
    "CheckpointIdle",
    "CheckpointLoading",
    "CheckpointReady",
    "CheckpointError",
    "CheckpointCache",
    "MemoryCache",
    "JsonFileCache",
    "CacheEntry",
    "cache_key",
    "QuickReview",
    "RemediationState",
    "RemediationTrigger",
    "build_quick_review",
    "RetryPolicy",
    "GenerationResult",
]
