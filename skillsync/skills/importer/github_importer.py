"""
GitHub fetcher: list, download and scan a skill package from a GitHub tree URL.

Key principles:
1. Allow-list only: https://github.com/<owner>/<repo>/tree/<ref>/<path>
2. Download URLs must point at GitHub content hosts (no SSRF via listing)
3. Read-only: downloaded text is scanned, never executed
4. Bounded: file count, per-file size and total size are capped
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import quote, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from skillsync import __version__
from skillsync.core.exceptions import InvalidSourceUrlError, NetworkError
from skillsync.core.scanner.content_scanner import (
    ScanResult,
    Threat,
    build_scan_result,
    compute_package_hash,
    scan_content,
)
from skillsync.core.scanner.limits import (
    MAX_FILE_SIZE,
    MAX_FILES,
    MAX_TOTAL_SIZE,
    file_extension,
    is_binary_file,
    is_suspicious_filename,
    is_text_file,
)
from skillsync.core.scanner.patterns import WARNING
from skillsync.skills.sanitize import sanitize_api_error

logger = logging.getLogger(__name__)

ALLOWED_SOURCE_HOSTS = frozenset({"github.com", "www.github.com"})
ALLOWED_DOWNLOAD_HOSTS = frozenset({
    "raw.githubusercontent.com",
    "github.com",
    "objects.githubusercontent.com",
})

GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
DEFAULT_TIMEOUT = 30
DEFAULT_USER_AGENT = f"skillsync/{__version__}"

_TREE_PATH = re.compile(
    r"^/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)/tree/([A-Za-z0-9_.\-/]+?)/(.+)$"
)


@dataclass(frozen=True)
class ParsedSourceRef:
    """Components of a validated GitHub tree URL"""

    owner: str
    repo: str
    ref: str
    path: str

    @property
    def name(self) -> str:
        """Last path segment, the default package name"""
        return self.path.rstrip("/").split("/")[-1]

    @property
    def contents_api_url(self) -> str:
        return (
            f"{GITHUB_API_BASE}/repos/{self.owner}/{self.repo}/contents/"
            f"{quote(self.path)}?ref={quote(self.ref, safe='')}"
        )

    @property
    def raw_url(self) -> str:
        return f"{GITHUB_RAW_BASE}/{self.owner}/{self.repo}/{self.ref}/{quote(self.path)}"


@dataclass
class FetchedPackage:
    """Files downloaded for one package plus everything that was left out"""

    source: ParsedSourceRef
    files: Dict[str, str] = field(default_factory=dict)
    threats: List[Threat] = field(default_factory=list)
    skipped_binary: List[str] = field(default_factory=list)
    skipped_suspicious: List[str] = field(default_factory=list)
    unscanned_dirs: List[str] = field(default_factory=list)
    skipped_by_limit: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(len(content.encode("utf-8")) for content in self.files.values())


@dataclass
class FetchScanResult(ScanResult):
    """ScanResult of a remote package with fetch bookkeeping"""

    files_scanned: int = 0
    skipped_binary: List[str] = field(default_factory=list)
    skipped_suspicious: List[str] = field(default_factory=list)
    unscanned_dirs: List[str] = field(default_factory=list)
    skipped_by_limit: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    files: Dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def partial(self) -> bool:
        """True when some content could not be included in the scan"""
        return bool(self.unscanned_dirs or self.skipped_by_limit or self.errors)

    def to_dict(self):
        data = super().to_dict()
        data.update(
            files_scanned=self.files_scanned,
            skipped_binary=list(self.skipped_binary),
            skipped_suspicious=list(self.skipped_suspicious),
            unscanned_dirs=list(self.unscanned_dirs),
            skipped_by_limit=list(self.skipped_by_limit),
            errors=list(self.errors),
        )
        return data


def parse_source_url(url: str) -> Optional[ParsedSourceRef]:
    """Parse a GitHub tree URL; None when it is not allow-listed."""
    if not isinstance(url, str):
        return None
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None

    if parsed.scheme != "https":
        return None
    if (parsed.hostname or "").lower() not in ALLOWED_SOURCE_HOSTS:
        return None
    if parsed.username or parsed.password or parsed.port not in (None, 443):
        return None

    match = _TREE_PATH.match(parsed.path)
    if not match:
        return None
    owner, repo, ref, path = match.groups()
    return ParsedSourceRef(owner=owner, repo=repo, ref=ref, path=path)


def validate_source_url(url: str) -> ParsedSourceRef:
    """
    Validate a source URL before any network access.

    Raises:
        InvalidSourceUrlError: not an https github.com tree URL
    """
    parsed = parse_source_url(url)
    if parsed is None:
        shown = url[:120] if isinstance(url, str) else repr(url)
        raise InvalidSourceUrlError(
            "URL rejected. Only https://github.com/owner/repo/tree/ref/path is accepted. "
            f"Got: {shown}"
        )
    return parsed


def _is_allowed_download(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme == "https" and (parsed.hostname or "").lower() in ALLOWED_DOWNLOAD_HOSTS


def _synthetic_threat(pattern: str, description: str, category: str) -> Threat:
    return Threat(pattern=pattern, severity=WARNING, description=description, category=category)


class GitHubFetcher:
    """Fetch skill packages through the GitHub contents API"""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        user_agent: str = DEFAULT_USER_AGENT,
        token: Optional[str] = None,
    ):
        """
        Initialize fetcher

        Args:
            session: Pre-configured session (tests inject a mock here)
            timeout: Per-request timeout in seconds
            max_retries: Retry attempts for idempotent requests
            user_agent: User-Agent header sent to GitHub
            token: Optional GitHub token, sent to api.github.com only
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.token = token

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET", "HEAD"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)
        self.session = session

    def _api_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": self.user_agent,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, url: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        try:
            return self.session.get(
                url,
                headers=headers or {"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise NetworkError(f"GitHub request timed out ({self.timeout}s): {url}")
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Network error fetching {url}: {e}")

    def fetch_package(self, url: str) -> FetchedPackage:
        """
        Download the immediate files of a package directory.

        Subdirectories are not descended into; they are recorded as
        unscanned. Binary, suspicious, oversized and non-text entries are
        classified and recorded rather than raising. A listing that is not
        found falls back to fetching the path as a single raw file.

        Args:
            url: GitHub tree URL

        Returns:
            FetchedPackage with downloaded files and skip bookkeeping

        Raises:
            InvalidSourceUrlError: URL fails validation (no network access made)
            NetworkError: listing and raw fallback both failed
        """
        source = validate_source_url(url)
        package = FetchedPackage(source=source)

        logger.info(f"Fetching skill package {source.owner}/{source.repo}@{source.ref}:{source.path}")
        listing = self._get(source.contents_api_url, headers=self._api_headers())

        if not listing.ok:
            return self._fetch_single_raw(package, listing.status_code, listing.text)

        try:
            body = listing.json()
        except ValueError:
            raise NetworkError("GitHub API returned a non-JSON listing")

        if isinstance(body, dict):
            return self._decode_single_object(package, body)
        if not isinstance(body, list):
            raise NetworkError("GitHub API returned an unexpected listing shape")

        self._collect_entries(package, body)
        return package

    def _fetch_single_raw(self, package: FetchedPackage, status: int, body: str) -> FetchedPackage:
        source = package.source
        logger.debug(f"Listing failed with HTTP {status}, trying raw file {source.raw_url}")
        raw = self._get(source.raw_url)
        if not raw.ok:
            raise NetworkError(sanitize_api_error(status, body, service="GitHub API"))
        package.files[source.name] = raw.text
        return package

    def _decode_single_object(self, package: FetchedPackage, body: dict) -> FetchedPackage:
        content = body.get("content")
        if not isinstance(content, str):
            raise NetworkError("GitHub API returned an object without file content")
        try:
            text = base64.b64decode(content).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as e:
            raise NetworkError(f"Could not decode file content: {e}")
        name = body.get("name") or package.source.name
        package.files[name] = text
        return package

    def _collect_entries(self, package: FetchedPackage, entries: list) -> None:
        total_size = 0

        for position, entry in enumerate(entries):
            if not isinstance(entry, dict):
                continue
            name = str(entry.get("name", ""))
            entry_type = entry.get("type")

            if len(package.files) >= MAX_FILES:
                remaining = [str(e.get("name", "")) for e in entries[position:] if isinstance(e, dict)]
                package.skipped_by_limit.extend(remaining)
                package.errors.append(
                    f"File limit ({MAX_FILES}) reached. {len(remaining)} entries not scanned."
                )
                break

            if is_suspicious_filename(name):
                package.skipped_suspicious.append(name)
                package.threats.append(_synthetic_threat(
                    "suspicious-filename",
                    f"[{name}] Suspicious filename, commonly used in supply chain attacks",
                    "supply-chain",
                ))

            if entry_type == "dir":
                package.unscanned_dirs.append(name)
                package.errors.append(
                    f'Subdirectory "{name}" was NOT scanned. Malicious code may hide in subdirectories.'
                )
                package.threats.append(_synthetic_threat(
                    "unscanned-directory",
                    f"[{name}/] Subdirectory not scanned, could contain hidden threats",
                    "incomplete-scan",
                ))
                continue

            download_url = entry.get("download_url")
            if entry_type != "file" or not download_url:
                continue

            if is_binary_file(name):
                package.skipped_binary.append(name)
                package.threats.append(_synthetic_threat(
                    "binary-file",
                    f"[{name}] Binary file detected, cannot scan, may contain executable code",
                    "binary",
                ))
                continue

            if not is_text_file(name):
                logger.debug(f"Skipping non-text file {name} ({file_extension(name)})")
                package.skipped_binary.append(name)
                continue

            size = entry.get("size") or 0
            if size > MAX_FILE_SIZE:
                self._record_oversized(package, name, size)
                continue

            if not _is_allowed_download(download_url):
                host = urlparse(download_url).hostname
                package.errors.append(f"[{name}] Skipped: download URL on unexpected host {host}")
                continue

            try:
                response = self._get(download_url)
            except NetworkError as e:
                package.errors.append(f"[{name}] Error: {e}")
                continue
            if not response.ok:
                package.errors.append(f"[{name}] Fetch failed: HTTP {response.status_code}")
                continue

            content = response.text
            content_size = len(content.encode("utf-8"))
            if content_size > MAX_FILE_SIZE:
                self._record_oversized(package, name, content_size)
                continue

            if total_size + content_size > MAX_TOTAL_SIZE:
                remaining = [str(e.get("name", "")) for e in entries[position:] if isinstance(e, dict)]
                package.skipped_by_limit.extend(remaining)
                package.errors.append(
                    f"Total size limit ({MAX_TOTAL_SIZE // 1024}KB) reached. Remaining files skipped."
                )
                break

            total_size += content_size
            package.files[name] = content

    @staticmethod
    def _record_oversized(package: FetchedPackage, name: str, size: int) -> None:
        kb = round(size / 1024)
        package.errors.append(f"[{name}] Skipped: {kb}KB exceeds limit.")
        package.threats.append(_synthetic_threat(
            "oversized-file",
            f"[{name}] File too large ({kb}KB), possible DoS",
            "dos",
        ))

    def fetch_and_scan(self, url: str) -> FetchScanResult:
        """
        Fetch a remote package and scan every included file.

        Threats from file content are prefixed with "[filename]". Synthetic
        warnings for suspicious, binary, oversized files and unscanned
        subdirectories count toward the risk level.

        Args:
            url: GitHub tree URL

        Returns:
            FetchScanResult; content_hash covers result.files, npm lock files aside

        Raises:
            InvalidSourceUrlError: URL fails validation
            NetworkError: package could not be listed or fetched at all
        """
        package = self.fetch_package(url)
        return scan_fetched_package(package)


def scan_fetched_package(package: FetchedPackage) -> FetchScanResult:
    """Scan the files of an already fetched package"""
    threats: List[Threat] = list(package.threats)
    for name, content in package.files.items():
        for threat in scan_content(content).threats:
            threat.description = f"[{name}] {threat.description}"
            threats.append(threat)

    files_scanned = len(package.files)
    base = build_scan_result(threats, compute_package_hash(package.files), files_scanned)
    return FetchScanResult(
        safe=base.safe,
        risk_level=base.risk_level,
        threats=base.threats,
        recommendation=base.recommendation,
        content_hash=base.content_hash,
        files_scanned=files_scanned,
        skipped_binary=list(package.skipped_binary),
        skipped_suspicious=list(package.skipped_suspicious),
        unscanned_dirs=list(package.unscanned_dirs),
        skipped_by_limit=list(package.skipped_by_limit),
        errors=list(package.errors),
        files=dict(package.files),
    )


__all__ = [
    "ALLOWED_SOURCE_HOSTS",
    "ALLOWED_DOWNLOAD_HOSTS",
    "ParsedSourceRef",
    "FetchedPackage",
    "FetchScanResult",
    "GitHubFetcher",
    "parse_source_url",
    "validate_source_url",
    "scan_fetched_package",
]
