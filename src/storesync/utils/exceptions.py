# utils/exceptions.py

from typing import Optional, Dict, Any, List
from http import HTTPStatus
from storesync.utils.constants import ErrorKind
from storesync.utils.logger import logger

class AppException(Exception):
    """
    Root of the service's errors. Each instance is logged once when raised,
    and routes turn status_code and message into the HTTP error body.

    ``retryable`` tells Retry whether another attempt can succeed.
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"
    retryable = True

    def __init__(self, message: str, details: Optional[str] = None, **context):
        super().__init__(message)
        self.message = message
        self.details = details
        self.context = context

        text = f"{type(self).__name__}: {message}"
        if details:
            text += f" | {details}"
        logger.error(text, extra={'error_code': self.error_code, 'context': context})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': type(self).__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details,
        }

# Store API
class ShopAPIError(AppException):
    """
    A store's GraphQL API refused or failed a request. ``kind`` drives
    retries and run classification; ``errors`` keeps the raw GraphQL errors.
    """
    status_code = HTTPStatus.BAD_GATEWAY
    error_code = "SHOP_API_ERROR"
    default_kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ):
        self.kind = kind or self.default_kind
        self.errors = errors or []
        super().__init__(message, **kwargs)

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.TRANSIENT, ErrorKind.UNKNOWN)

    def to_dict(self) -> Dict[str, Any]:
        return dict(super().to_dict(), kind=self.kind.value)

class ShopUnavailable(ShopAPIError):
    """Transport level failure: timeout, throttling, 5xx, unreadable body"""
    error_code = "SHOP_UNAVAILABLE"
    default_kind = ErrorKind.TRANSIENT

class AuthError(ShopAPIError):
    """The store rejected the access token or its scopes"""
    status_code = HTTPStatus.UNAUTHORIZED
    error_code = "AUTH_ERROR"
    default_kind = ErrorKind.PERMISSION

# Local
class ValidationError(AppException):
    status_code = HTTPStatus.BAD_REQUEST
    error_code = "VALIDATION_ERROR"
    retryable = False

class DatabaseError(AppException):
    error_code = "DB_ERROR"

class ConfigError(AppException):
    error_code = "CONFIG_ERROR"
    retryable = False

class BusinessError(AppException):
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    error_code = "BUSINESS_ERROR"
    retryable = False

class ResourceNotFound(BusinessError):
    status_code = HTTPStatus.NOT_FOUND
    error_code = "RESOURCE_NOT_FOUND"

class DuplicateError(BusinessError):
    """The resource already exists, or a sync for the connection is already running"""
    status_code = HTTPStatus.CONFLICT
    error_code = "DUPLICATE_ERROR"

class SyncAbortedError(BusinessError):
    """A sync run cannot continue (bad credential, missing connection, source unreachable)"""
    error_code = "SYNC_ABORTED"
