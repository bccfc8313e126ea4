"""Engine components driving fetch → parse → select → format."""

from .bookkeeper import FragmentBookkeeper, NextFragment
from .dedup import DedupCache
from .fetcher import FetchResponse, HttpPageFetcher
from .formatter import MemberRecord, StatementFormatter
from .members import MemberCandidate, MemberDereferencer, MemberExtractor
from .metadata import FeedMetadata, TreeMetadataExtractor
from .parser import RdfDocumentParser
from .rate_limiter import RateLimiter
from .thread_pool import ThreadPoolManager

__all__ = [
    "DedupCache",
    "FeedMetadata",
    "FetchResponse",
    "FragmentBookkeeper",
    "HttpPageFetcher",
    "MemberCandidate",
    "MemberDereferencer",
    "MemberExtractor",
    "MemberRecord",
    "NextFragment",
    "RateLimiter",
    "RdfDocumentParser",
    "StatementFormatter",
    "ThreadPoolManager",
    "TreeMetadataExtractor",
]
