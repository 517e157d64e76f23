"""glucosync - Async glucose reading aggregation and sync engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("glucosync")
except PackageNotFoundError:
    __version__ = "0+local"
from glucosync.adapters import DeviceHealthStoreAdapter, HealthStoreBackend, OfficialFeedAdapter, ShareFeedAdapter
from glucosync.client import GlucoseSyncClient
from glucosync.config import SyncConfig
from glucosync.exceptions import (
    AllFeedsFailedError,
    ConfigError,
    FeedApiError,
    FeedAuthenticationError,
    FeedError,
    FeedRateLimitError,
    FeedSessionExpiredError,
    FeedTimeoutError,
    FeedTransportError,
    FeedWindowError,
    GlucoseSyncError,
    HealthStorePermissionError,
    ReadingStoreError,
)
from glucosync.models import (
    DataSourceLabel,
    DisplayPoint,
    HealthSample,
    Reading,
    RefreshResult,
    SourceLabel,
    SyncState,
    TimeWindow,
)
from glucosync.store import PersistentReadingStore
from glucosync.sync import (
    HybridMerger,
    RefreshEvent,
    RefreshEventChannel,
    RefreshTrigger,
    SyncOrchestrator,
    annotate,
    merge_into_baseline,
)

__all__ = [
    "__version__",
    "AllFeedsFailedError",
    "ConfigError",
    "DataSourceLabel",
    "DeviceHealthStoreAdapter",
    "DisplayPoint",
    "FeedApiError",
    "FeedAuthenticationError",
    "FeedError",
    "FeedRateLimitError",
    "FeedSessionExpiredError",
    "FeedTimeoutError",
    "FeedTransportError",
    "FeedWindowError",
    "GlucoseSyncClient",
    "GlucoseSyncError",
    "HealthSample",
    "HealthStoreBackend",
    "HealthStorePermissionError",
    "HybridMerger",
    "OfficialFeedAdapter",
    "PersistentReadingStore",
    "Reading",
    "ReadingStoreError",
    "RefreshEvent",
    "RefreshEventChannel",
    "RefreshResult",
    "RefreshTrigger",
    "ShareFeedAdapter",
    "SourceLabel",
    "SyncConfig",
    "SyncOrchestrator",
    "SyncState",
    "TimeWindow",
    "annotate",
    "merge_into_baseline",
]
