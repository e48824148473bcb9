from ._version import __version__
from .errors import (
    DuplicateIdError,
    FetchFailureError,
    IncompleteSourceError,
    InvalidSourceURLError,
    MalformedMetadataError,
    ManifestError,
    MissingIdError,
    NoSourceError,
    SkillMirrorError,
    UpstreamPathNotFoundError,
)
from .fetch import GitSparseFetcher, RemoteContentFetcher, TarballFetcher, make_fetcher
from .manifest import ManifestEntry, ManifestResult, build_manifest
from .planner import FetchGroup, group_by_repository
from .registry import SkillRecord, SkillSource, scan_registry
from .remote import BlobUrl, ExplicitAddress, RemoteAddress, TreeUrl, parse_remote_address, resolve_address
from .sync import AddResult, SkillSynchronizer, SyncResult

__all__ = [
    "__version__",
    "AddResult",
    "BlobUrl",
    "DuplicateIdError",
    "ExplicitAddress",
    "FetchFailureError",
    "FetchGroup",
    "GitSparseFetcher",
    "IncompleteSourceError",
    "InvalidSourceURLError",
    "MalformedMetadataError",
    "ManifestEntry",
    "ManifestError",
    "ManifestResult",
    "MissingIdError",
    "NoSourceError",
    "RemoteAddress",
    "RemoteContentFetcher",
    "SkillMirrorError",
    "SkillRecord",
    "SkillSource",
    "SkillSynchronizer",
    "SyncResult",
    "TarballFetcher",
    "TreeUrl",
    "UpstreamPathNotFoundError",
    "build_manifest",
    "group_by_repository",
    "make_fetcher",
    "parse_remote_address",
    "resolve_address",
    "scan_registry",
]
