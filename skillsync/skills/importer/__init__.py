"""Remote package sources"""

from skillsync.skills.importer.github_importer import (
    ParsedSourceRef,
    FetchedPackage,
    FetchScanResult,
    GitHubFetcher,
    validate_source_url,
    parse_source_url,
)

__all__ = [
    "ParsedSourceRef",
    "FetchedPackage",
    "FetchScanResult",
    "GitHubFetcher",
    "validate_source_url",
    "parse_source_url",
]
