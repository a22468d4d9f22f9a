"""Engine components orchestrating fetch → normalize → dedupe → upsert."""

from .dedup import DeduplicationResult, DeduplicationStore
from .feeds import FeedRegistry
from .fetcher import Fetcher, FetchResult
from .fingerprint import fingerprint
from .normalizer import Normalizer
from .optout import OptOutProcessor
from .pipeline import IngestionPipeline
from .thread_pool import ThreadPoolManager

__all__ = [
    "DeduplicationResult",
    "DeduplicationStore",
    "FeedRegistry",
    "FetchResult",
    "Fetcher",
    "IngestionPipeline",
    "Normalizer",
    "OptOutProcessor",
    "ThreadPoolManager",
    "fingerprint",
]
