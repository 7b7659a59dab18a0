"""Exception classes for skillsync"""

from typing import Any, Optional


class SkillSyncError(Exception):
    """Base exception for all skillsync errors"""
    pass


class ValidationError(SkillSyncError):
    """Raised when an input (name, URL, path) fails validation"""
    pass


class InvalidSkillNameError(ValidationError):
    """Raised when a package name does not match the allowed pattern"""
    pass


class PathTraversalError(ValidationError):
    """Raised when a computed path escapes its root directory"""
    pass


class InvalidSourceUrlError(ValidationError):
    """Raised when a source URL is not an allow-listed GitHub tree URL"""
    pass


class BlockedByPolicyError(SkillSyncError):
    """Raised when a scan result is refused by the install risk policy"""

    def __init__(self, message: str, scan_result: Optional[Any] = None):
        super().__init__(message)
        self.scan_result = scan_result


class CriticalRiskBlockedError(BlockedByPolicyError):
    """Raised for critical-risk content; cannot be overridden with force"""
    pass


class RiskRejectedError(BlockedByPolicyError):
    """Raised for medium/high-risk content installed without force"""
    pass


class SkillNotFoundError(SkillSyncError):
    """Raised when a named package is not installed"""
    pass


class SkillNotADirectoryError(SkillSyncError):
    """Raised when a package path exists but is not a directory"""
    pass


class AlreadyInstalledError(SkillSyncError):
    """Raised when installing over an existing package without force"""
    pass


class NetworkError(SkillSyncError):
    """Raised when a remote request fails"""
    pass


class MarketplaceAPIError(NetworkError):
    """Raised when the marketplace API answers with an error status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SyncInProgressError(SkillSyncError):
    """Raised when a sync is requested while another one is running"""
    pass
