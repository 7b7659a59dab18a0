"""Threat scanning for skill package content"""

from skillsync.core.scanner.content_scanner import (
    RISK_LEVEL_ORDER,
    Threat,
    ScanResult,
    scan_content,
    build_scan_result,
    compute_hash,
    compute_package_hash,
    combine_package_files,
    risk_exceeds,
)
from skillsync.core.scanner.patterns import (
    ThreatSignature,
    CRITICAL_PATTERNS,
    CRITICAL_MULTILINE_PATTERNS,
    WARNING_PATTERNS,
)

__all__ = [
    "RISK_LEVEL_ORDER",
    "Threat",
    "ScanResult",
    "scan_content",
    "build_scan_result",
    "compute_hash",
    "compute_package_hash",
    "combine_package_files",
    "risk_exceeds",
    "ThreatSignature",
    "CRITICAL_PATTERNS",
    "CRITICAL_MULTILINE_PATTERNS",
    "WARNING_PATTERNS",
]
