"""Merging, gap annotation and refresh orchestration."""

from glucosync.sync.events import RefreshEvent, RefreshEventChannel, RefreshTrigger
from glucosync.sync.gaps import annotate
from glucosync.sync.merge import HybridFetch, HybridMerger, merge_into_baseline
from glucosync.sync.orchestrator import MealTimeSource, SyncOrchestrator

__all__ = [
    "HybridFetch",
    "HybridMerger",
    "MealTimeSource",
    "RefreshEvent",
    "RefreshEventChannel",
    "RefreshTrigger",
    "SyncOrchestrator",
    "annotate",
    "merge_into_baseline",
]
