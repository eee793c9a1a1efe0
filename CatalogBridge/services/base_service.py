"""
Base service abstraction for database session management and error handling.

Every service owns the unit of work for one call: the session is committed
when the block succeeds, rolled back when it raises, and always closed.
Repositories only flush.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, TypeVar, Generic
from abc import ABC

from sqlmodel import Session
from pydantic import BaseModel

from CatalogBridge.database.db import engine
from CatalogBridge.exceptions import (
    CatalogBridgeException, ValidationError, map_exception_to_base_service, log_exception
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ServiceResponse(BaseModel, Generic[T]):
    """Standardized response format for service operations."""
    success: bool
    message: str
    data: Optional[T] = None
    errors: Optional[list[str]] = None

    @classmethod
    def success_response(cls, message: str, data: T = None) -> 'ServiceResponse[T]':
        return cls(success=True, message=message, data=data)

    @classmethod
    def error_response(cls, message: str, errors: list[str] = None) -> 'ServiceResponse[T]':
        return cls(success=False, message=message, errors=errors or [])


class BaseService(ABC):
    """
    Base service class providing session management and error handling.

    Usage:
        class ProductImportService(BaseService):
            async def import_products_by_brands(self, ...):
                async with self.get_async_session() as session:
                    ...
    """

    def __init__(self, engine_override=None):
        """
        Args:
            engine_override: Optional engine to use instead of the global engine (for testing)
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.engine = engine_override if engine_override is not None else engine

    @asynccontextmanager
    async def get_async_session(self):
        """
        Async context manager for database session management.

        Commits on success, rolls back on any exception and always closes.
        Services await adapter calls while the session is open.
        """
        session = Session(self.engine)
        try:
            self.logger.debug("Async database session created")
            yield session
            session.commit()
            self.logger.debug("Async database session committed successfully")
        except Exception as e:
            session.rollback()
            self.logger.error(f"Async database session rolled back due to error: {e}")
            raise
        finally:
            session.close()
            self.logger.debug("Async database session closed")

    def success_response(self, message: str, data: Any = None) -> ServiceResponse:
        self.logger.info(f"Service operation successful: {message}")
        return ServiceResponse.success_response(message, data)

    def error_response(self, message: str, errors: list[str] = None) -> ServiceResponse:
        self.logger.error(f"Service operation failed: {message}")
        if errors:
            self.logger.error(f"Additional errors: {errors}")
        return ServiceResponse.error_response(message, errors)

    def handle_exception(self, e: Exception, operation: str) -> ServiceResponse:
        """
        Centralized exception handling for service operations.

        Args:
            e: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            ServiceResponse with appropriate error information
        """
        log_exception(e, context=f"{self.__class__.__name__}.{operation}")

        mapped_exception = map_exception_to_base_service(e)

        if isinstance(mapped_exception, CatalogBridgeException) and mapped_exception.error_code != "UNKNOWN_ERROR":
            return self.error_response(mapped_exception.message, [str(mapped_exception)])
        return self.error_response(
            f"An unexpected error occurred during {operation}",
            [str(e)]
        )

    def validate_required_fields(self, data: Dict[str, Any], required_fields: list[str]) -> None:
        """
        Raises:
            ValidationError: If any required fields are missing or empty
        """
        missing_fields = [
            field for field in required_fields
            if field not in data or data[field] is None or data[field] == ""
        ]

        if missing_fields:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing_fields)}",
                missing_fields=missing_fields
            )

    def log_operation(self, operation: str, entity_type: str, entity_id: str = None):
        entity_info = f" (ID: {entity_id})" if entity_id else ""
        self.logger.info(f"Starting {operation} operation for {entity_type}{entity_info}")
