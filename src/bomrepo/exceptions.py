"""
Custom exceptions for the bomrepo library.

This module defines the exceptions raised by the repository core. Only
BomAlreadyExistsError is produced by intercepting a storage-level signal;
every other I/O error from the filesystem or boto3 propagates unmodified.
"""

from typing import Optional, Dict, Any, List


class BomRepoError(Exception):
    """Base exception for all bomrepo related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} (Details: {details_str})"
        return self.message


class ConfigurationError(BomRepoError):
    """Raised when there are configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.config_key = config_key
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details)


class BomVersionError(BomRepoError):
    """Base exception for errors tied to a (serial number, version) pair."""

    def __init__(self, message: str, serial_number: Optional[str] = None, version: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.serial_number = serial_number
        self.version = version
        details = details or {}
        if serial_number:
            details["serial_number"] = serial_number
        if version is not None:
            details["version"] = version
        super().__init__(message, details)


class BomAlreadyExistsError(BomVersionError):
    """Raised when a store targets a key that already has content."""
    pass


class BomNotFoundError(BomVersionError):
    """Raised at the application boundary when a BOM or original is absent."""
    pass


class InvalidIdentifierError(BomRepoError):
    """Raised for a malformed serial number or CDX URN."""

    def __init__(self, message: str, identifier: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.identifier = identifier
        details = details or {}
        if identifier is not None:
            details["identifier"] = identifier
        super().__init__(message, details)


class MediaTypeError(BomRepoError):
    """Base exception for content negotiation failures."""

    def __init__(self, message: str, media_type: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.media_type = media_type
        details = details or {}
        if media_type:
            details["media_type"] = media_type
        super().__init__(message, details)


class UnsupportedMediaTypeError(MediaTypeError):
    """Raised when a submission uses a content type no codec accepts."""
    pass


class UnacceptableMediaTypeError(MediaTypeError):
    """Raised when nothing in the Accept set can be produced."""
    pass


class BomFormatError(BomRepoError):
    """Raised when a submitted document cannot be decoded."""

    def __init__(self, message: str, format: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.format = format
        details = details or {}
        if format:
            details["format"] = format
        super().__init__(message, details)


class InvalidSearchError(BomRepoError):
    """Raised when a search is issued without any filter."""
    pass


class MethodNotAllowedError(BomRepoError):
    """Raised when an operation is disabled by configuration."""

    def __init__(self, message: str, method: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.method = method
        details = details or {}
        if method:
            details["method"] = method
        super().__init__(message, details)


class StorageBackendError(BomRepoError):
    """Raised for backend failures the core detects itself.

    Batched deletes collect per-key failures and report them together
    through this exception once every batch has been attempted.
    """

    def __init__(self, message: str, operation: Optional[str] = None, bucket: Optional[str] = None,
                 failed_keys: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.bucket = bucket
        self.failed_keys = failed_keys or []
        details = details or {}
        if operation:
            details["operation"] = operation
        if bucket:
            details["bucket"] = bucket
        if failed_keys:
            details["failed_keys"] = len(failed_keys)
        super().__init__(message, details)
