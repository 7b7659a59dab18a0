"""
Content scanner: match text against the threat catalog and classify risk.

Scanning is pure and deterministic. The same text always yields the same
threats in the same order, and the same risk level.

Usage:
    from skillsync.core.scanner import scan_content

    result = scan_content(Path("SKILL.md").read_text())
    if result.risk_level == "critical":
        ...
"""

import hashlib
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from skillsync.core.scanner.limits import (
    DEPENDENCY_ARTIFACTS,
    FILE_BOUNDARY,
    MAX_LINE_LENGTH,
    MAX_MULTILINE_SCAN,
)
from skillsync.core.scanner.patterns import (
    CRITICAL,
    WARNING,
    CRITICAL_PATTERNS,
    CRITICAL_MULTILINE_PATTERNS,
    WARNING_PATTERNS,
)

RISK_SAFE = "safe"
RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"
RISK_CRITICAL = "critical"

RISK_LEVEL_ORDER: Dict[str, int] = {
    RISK_SAFE: 0,
    RISK_LOW: 1,
    RISK_MEDIUM: 2,
    RISK_HIGH: 3,
    RISK_CRITICAL: 4,
}

LONG_LINE_PATTERN = "excessive-line-length"


@dataclass
class Threat:
    """A single finding. line is 1-based and None for whole-content matches."""

    pattern: str
    severity: str
    description: str
    category: str
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScanResult:
    """Outcome of scanning one text or one package"""

    safe: bool
    risk_level: str
    threats: List[Threat]
    recommendation: str
    content_hash: str

    @property
    def critical_count(self) -> int:
        return sum(1 for t in self.threats if t.severity == CRITICAL)

    @property
    def warning_count(self) -> int:
        return sum(1 for t in self.threats if t.severity == WARNING)

    @property
    def summary(self) -> str:
        return f"{self.risk_level.upper()}: {self.recommendation}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safe": self.safe,
            "risk_level": self.risk_level,
            "threats": [t.to_dict() for t in self.threats],
            "recommendation": self.recommendation,
            "content_hash": self.content_hash,
        }


def compute_hash(content: Union[str, bytes]) -> str:
    """SHA-256 hex digest of raw bytes, or of the UTF-8 encoding of text.

    Lone surrogates are encoded with surrogatepass so any str hashes.
    """
    if isinstance(content, bytes):
        return hashlib.sha256(content).hexdigest()
    return hashlib.sha256(content.encode("utf-8", "surrogatepass")).hexdigest()


def combine_package_files(files: Mapping[str, str]) -> str:
    """Join package files in filename order with the boundary marker."""
    return FILE_BOUNDARY.join(files[name] for name in sorted(files))


def compute_package_hash(files: Mapping[str, str]) -> str:
    """Content hash of a whole package.

    Installer, remote fetcher and registry all hash through here so a fresh
    install and a later rescan of the untouched directory agree. npm lock
    files are skipped: the dependency install creates them after the
    install hash is taken.
    """
    hashed = {name: text for name, text in files.items() if name not in DEPENDENCY_ARTIFACTS}
    return compute_hash(combine_package_files(hashed))


def risk_rank(level: str) -> int:
    return RISK_LEVEL_ORDER.get(level, RISK_LEVEL_ORDER[RISK_CRITICAL])


def risk_exceeds(level: str, maximum: str) -> bool:
    """True when level is strictly riskier than maximum"""
    return risk_rank(level) > risk_rank(maximum)


def scan_content(content: Union[str, bytes]) -> ScanResult:
    """
    Scan text against every catalog signature.

    Per-line pass: critical patterns first, then warnings. Each signature is
    reported at most once (its first matching line). Lines longer than
    MAX_LINE_LENGTH are never matched; each is reported once as an
    obfuscation warning instead.

    Whole-content pass: multiline critical patterns over the first
    MAX_MULTILINE_SCAN characters, reported without a line number.

    Args:
        content: Text to scan; bytes are hashed as given and decoded as
            UTF-8 with replacement characters for matching

    Returns:
        ScanResult with content_hash = sha256(content)
    """
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
    threats = find_threats(text)
    return build_scan_result(threats, compute_hash(content))


def find_threats(content: str) -> List[Threat]:
    threats: List[Threat] = []
    seen_signatures = set()
    flagged_long_lines = set()
    lines = content.split("\n")

    for signatures in (CRITICAL_PATTERNS, WARNING_PATTERNS):
        for signature in signatures:
            for index, line in enumerate(lines):
                line_no = index + 1
                if len(line) > MAX_LINE_LENGTH:
                    if line_no not in flagged_long_lines:
                        flagged_long_lines.add(line_no)
                        threats.append(
                            Threat(
                                pattern=LONG_LINE_PATTERN,
                                severity=WARNING,
                                description=f"Line is {len(line)} chars, may hide obfuscated content",
                                category="obfuscation",
                                line=line_no,
                            )
                        )
                    continue

                key = (signature.source, signature.severity)
                if key not in seen_signatures and signature.matches(line):
                    seen_signatures.add(key)
                    threats.append(
                        Threat(
                            pattern=signature.source,
                            severity=signature.severity,
                            description=signature.description,
                            category=signature.category,
                            line=line_no,
                        )
                    )

    capped = content[:MAX_MULTILINE_SCAN]
    for signature in CRITICAL_MULTILINE_PATTERNS:
        if signature.matches(capped):
            threats.append(
                Threat(
                    pattern=signature.source,
                    severity=signature.severity,
                    description=signature.description,
                    category=signature.category,
                )
            )

    return threats


def classify_risk(threats: Iterable[Threat]) -> Tuple[str, bool, int, int]:
    """
    Derive (risk_level, safe, critical_count, warning_count).

    Risk: any critical -> critical; else >=5 warnings -> high, >=3 -> medium,
    >=1 -> low, 0 -> safe. safe requires no criticals and fewer than 3
    warnings, so a low-risk result with 1-2 warnings is still safe.
    """
    critical_count = 0
    warning_count = 0
    for threat in threats:
        if threat.severity == CRITICAL:
            critical_count += 1
        elif threat.severity == WARNING:
            warning_count += 1

    if critical_count > 0:
        risk_level = RISK_CRITICAL
    elif warning_count >= 5:
        risk_level = RISK_HIGH
    elif warning_count >= 3:
        risk_level = RISK_MEDIUM
    elif warning_count >= 1:
        risk_level = RISK_LOW
    else:
        risk_level = RISK_SAFE

    safe = critical_count == 0 and warning_count < 3
    return risk_level, safe, critical_count, warning_count


def build_recommendation(
    risk_level: str,
    critical_count: int,
    warning_count: int,
    files_scanned: Optional[int] = None,
) -> str:
    suffix = f" across {files_scanned} files" if files_scanned is not None else ""
    if risk_level == RISK_CRITICAL:
        return f"BLOCKED: {critical_count} critical threat(s) found{suffix}. Do NOT install this skill."
    if risk_level == RISK_HIGH:
        return (
            f"HIGH RISK: {warning_count} suspicious patterns detected{suffix}. "
            f"Manual review strongly recommended."
        )
    if risk_level == RISK_MEDIUM:
        return (
            f"MODERATE RISK: {warning_count} patterns flagged{suffix}. "
            f"Review flagged lines before installing. Not considered safe."
        )
    if risk_level == RISK_LOW:
        return f"LOW RISK: {warning_count} minor concern(s){suffix}. Likely safe but review flagged items."
    return f"No threats detected{suffix}. This skill appears safe to use."


def build_scan_result(
    threats: List[Threat],
    content_hash: str,
    files_scanned: Optional[int] = None,
) -> ScanResult:
    """Classify threats and assemble a ScanResult"""
    risk_level, safe, critical_count, warning_count = classify_risk(threats)
    return ScanResult(
        safe=safe,
        risk_level=risk_level,
        threats=threats,
        recommendation=build_recommendation(risk_level, critical_count, warning_count, files_scanned),
        content_hash=content_hash,
    )
