"""Reading sources: official feed, Share feed and device health store."""

from glucosync.adapters.base import ReadingSource
from glucosync.adapters.health_store import DeviceHealthStoreAdapter, HealthStoreBackend
from glucosync.adapters.official import OfficialFeedAdapter
from glucosync.adapters.share import ShareFeedAdapter

__all__ = [
    "DeviceHealthStoreAdapter",
    "HealthStoreBackend",
    "OfficialFeedAdapter",
    "ReadingSource",
    "ShareFeedAdapter",
]
