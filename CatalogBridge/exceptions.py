"""
Consolidated CatalogBridge Exception Hierarchy

Every error raised by the integration layer derives from CatalogBridgeException
so that route handlers and services can render a consistent error payload.

Architecture:
- Base exception classes for common error types
- Credential cipher errors (envelope format, decryption, serialization)
- Adapter errors (registry lookups, capabilities, vendor connectivity)
- Catalog errors (suppliers, brands, image proxy tokens, sync jobs)
"""

import logging
from typing import Any, Dict, Optional, List

logger = logging.getLogger(__name__)


# =============================================================================
# Base Exception Classes
# =============================================================================


class CatalogBridgeException(Exception):
    """Base exception for all CatalogBridge-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {"error_code": self.error_code, "message": self.message, "details": self.details}


class ValidationError(CatalogBridgeException):
    """Raised when input validation fails."""

    def __init__(
        self, message: str, field_errors: Optional[Dict[str, str]] = None, missing_fields: Optional[List[str]] = None
    ):
        super().__init__(message, error_code="VALIDATION_ERROR")
        self.field_errors = field_errors or {}
        self.missing_fields = missing_fields or []

        if field_errors or missing_fields:
            self.details.update({"field_errors": field_errors, "missing_fields": missing_fields})


class ResourceNotFoundError(CatalogBridgeException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None):
        super().__init__(message, error_code="RESOURCE_NOT_FOUND")
        self.resource_type = resource_type
        self.resource_id = resource_id

        if resource_type or resource_id:
            self.details.update({"resource_type": resource_type, "resource_id": resource_id})


class ConfigurationError(CatalogBridgeException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_field: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code or "CONFIGURATION_ERROR")
        self.config_field = config_field

        if config_field:
            self.details.update({"config_field": config_field})


class ConnectionError(CatalogBridgeException):
    """Raised when connection to external service fails."""

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        endpoint: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code=error_code or "CONNECTION_ERROR")
        self.service_name = service_name
        self.endpoint = endpoint

        if service_name or endpoint:
            self.details.update({"service_name": service_name, "endpoint": endpoint})


# =============================================================================
# Credential Cipher Exceptions
# =============================================================================


class CredentialCipherError(CatalogBridgeException):
    """Base exception for credential envelope errors."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code or "CREDENTIAL_ERROR")


class InvalidFormatError(CredentialCipherError):
    """Raised when an envelope is structurally malformed."""

    def __init__(self, message: str = "Invalid encrypted data format"):
        super().__init__(message, error_code="INVALID_ENVELOPE_FORMAT")


class DecryptionError(CredentialCipherError):
    """Raised when an envelope fails authentication or cannot be decrypted."""

    def __init__(self, message: str = "Failed to decrypt data"):
        super().__init__(message, error_code="DECRYPTION_FAILED")


class SerializationError(CredentialCipherError):
    """Raised when a secret cannot be serialized for encryption."""

    def __init__(self, message: str):
        super().__init__(message, error_code="SERIALIZATION_ERROR")


# =============================================================================
# Adapter Exceptions
# =============================================================================


class AdapterError(CatalogBridgeException):
    """Base exception for supplier/marketplace adapter errors."""

    def __init__(self, message: str, adapter_type: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code or "ADAPTER_ERROR")
        self.adapter_type = adapter_type

        if adapter_type:
            self.details.update({"adapter_type": adapter_type})


class UnknownAdapterTypeError(AdapterError):
    """Raised when no adapter is registered for a type code."""

    def __init__(self, message: str, adapter_type: Optional[str] = None):
        super().__init__(message, adapter_type=adapter_type, error_code="UNKNOWN_ADAPTER_TYPE")


class UnsupportedOperationError(AdapterError):
    """Raised when an adapter is asked for a capability it does not implement."""

    def __init__(self, message: str, adapter_type: Optional[str] = None, capability: Optional[str] = None):
        super().__init__(message, adapter_type=adapter_type, error_code="UNSUPPORTED_OPERATION")
        self.capability = capability

        if capability:
            self.details.update({"capability": capability})


class AdapterConfigurationError(AdapterError):
    """Raised when adapter credentials/config are missing required keys."""

    def __init__(self, message: str, adapter_type: Optional[str] = None, missing_fields: Optional[List[str]] = None):
        super().__init__(message, adapter_type=adapter_type, error_code="ADAPTER_CONFIGURATION_ERROR")
        self.missing_fields = missing_fields or []

        if missing_fields:
            self.details.update({"missing_fields": missing_fields})


class AdapterConnectionError(AdapterError):
    """Raised when a vendor API call fails (network, timeout or error response)."""

    def __init__(
        self,
        message: str,
        adapter_type: Optional[str] = None,
        endpoint: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, adapter_type=adapter_type, error_code="ADAPTER_CONNECTION_ERROR")
        self.endpoint = endpoint
        self.status = status

        if endpoint or status:
            self.details.update({"endpoint": endpoint, "status": status})


# =============================================================================
# Catalog Exceptions
# =============================================================================


class SupplierNotFoundError(ResourceNotFoundError):
    """Raised when a supplier is missing, inactive or owned by another tenant."""

    def __init__(self, message: str, supplier_id: Optional[str] = None):
        super().__init__(message, resource_type="supplier", resource_id=supplier_id)


class MarketplaceNotFoundError(ResourceNotFoundError):
    """Raised when a marketplace is missing, inactive or owned by another tenant."""

    def __init__(self, message: str, marketplace_id: Optional[str] = None):
        super().__init__(message, resource_type="marketplace", resource_id=marketplace_id)


class BrandNotFoundError(ResourceNotFoundError):
    """Raised when a brand is not found."""

    def __init__(self, message: str, brand_id: Optional[str] = None):
        super().__init__(message, resource_type="brand", resource_id=brand_id)


class SyncJobNotFoundError(ResourceNotFoundError):
    """Raised when a sync job correlation id is unknown."""

    def __init__(self, message: str, correlation_id: Optional[str] = None):
        super().__init__(message, resource_type="sync_job", resource_id=correlation_id)


class InvalidImageTokenError(CatalogBridgeException):
    """Raised when an image proxy token cannot be decrypted or decoded."""

    def __init__(self, message: str = "Invalid image token"):
        super().__init__(message, error_code="INVALID_IMAGE_TOKEN")


class UnsafeImageUrlError(CatalogBridgeException):
    """Raised when a decrypted image token points at a non-http(s) URL."""

    def __init__(self, message: str = "Invalid image URL"):
        super().__init__(message, error_code="UNSAFE_IMAGE_URL")


class ImageFetchError(ConnectionError):
    """Raised when the upstream image cannot be fetched."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message, service_name="image_proxy", endpoint=endpoint, error_code="IMAGE_FETCH_ERROR")


# =============================================================================
# Exception Mapping for BaseService Integration
# =============================================================================


def map_exception_to_base_service(exception: Exception) -> CatalogBridgeException:
    """Map standard exceptions to CatalogBridge exceptions for BaseService integration."""
    if isinstance(exception, CatalogBridgeException):
        return exception
    elif isinstance(exception, ValueError):
        return ValidationError(str(exception))
    elif isinstance(exception, KeyError):
        return ResourceNotFoundError(f"Resource not found: {str(exception)}")
    else:
        return CatalogBridgeException(str(exception), error_code="UNKNOWN_ERROR")


# =============================================================================
# Exception Logging Helpers
# =============================================================================


def log_exception(exception: Exception, context: str = None, extra_info: Optional[Dict[str, Any]] = None):
    """
    Centralized exception logging with consistent format.

    Args:
        exception: The exception to log
        context: Additional context about where the exception occurred
        extra_info: Additional information to include in the log
    """
    if isinstance(exception, CatalogBridgeException):
        log_data = {
            "error_code": exception.error_code,
            "error_message": exception.message,  # LogRecord reserves "message"
            "details": exception.details,
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.error(f"CatalogBridge Error: {exception.message}", extra=log_data)
    else:
        log_data = {
            "exception_type": type(exception).__name__,
            "error_message": str(exception),
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.error(f"Unexpected Error: {str(exception)}", extra=log_data)


def get_http_status_code(exception: Exception) -> int:
    """Map an exception to the HTTP status code used in API responses."""
    if isinstance(exception, ValidationError):
        return 422
    elif isinstance(exception, ResourceNotFoundError):
        return 404
    elif isinstance(exception, (CredentialCipherError, UnsafeImageUrlError, InvalidImageTokenError)):
        return 400
    elif isinstance(exception, (ConfigurationError, UnknownAdapterTypeError, UnsupportedOperationError)):
        return 500
    elif isinstance(exception, AdapterConfigurationError):
        return 400
    elif isinstance(exception, (ConnectionError, AdapterConnectionError)):
        return 503
    elif isinstance(exception, CatalogBridgeException):
        return 400
    else:
        return 500
