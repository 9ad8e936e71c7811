"""Shared error handling infrastructure for MMS.

Provides the exception taxonomy, HTTP status mapping, user-facing error
messages, and Sentry integration with request context.
"""

import logging
import os
from typing import Optional, Dict, Any

import sentry_sdk

logger = logging.getLogger(__name__)

_sentry_initialized = False


def init_sentry(dsn: Optional[str] = None) -> bool:
    """Initialize Sentry SDK with configuration.

    Args:
        dsn: Sentry DSN. If not provided, reads from centralized settings.

    Returns:
        True if Sentry is active after the call.
    """
    global _sentry_initialized

    if _sentry_initialized:
        return True

    try:
        from MMS.services.shared.settings import get_settings

        settings = get_settings()

        effective_dsn = dsn
        if not effective_dsn and settings.observability.sentry.dsn:
            effective_dsn = settings.observability.sentry.dsn.get_secret_value()
        if not effective_dsn:
            effective_dsn = os.getenv("SENTRY_DSN")

        if not effective_dsn:
            logger.info("Sentry DSN not configured, error tracking disabled")
            return False

        sentry_sdk.init(
            dsn=effective_dsn,
            traces_sample_rate=settings.observability.sentry.traces_sample_rate,
            environment=settings.observability.sentry.environment,
        )

        _sentry_initialized = True
        logger.info("Sentry error tracking initialized")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


class MMSError(Exception):
    """Base exception for all MMS errors.

    All MMS errors include:
    - request_id: Search request identifier
    - service: Which component raised the error
    - metadata: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        service: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.service = service
        self.metadata = metadata or {}
        self.user_message = user_message

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "service": self.service,
            "metadata": self.metadata
        }


class MMSServiceError(MMSError):
    """Base exception for MMS services with user-facing defaults."""

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        service: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(
            message,
            request_id=request_id,
            service=service,
            metadata=metadata,
            user_message=user_message or message,
        )


class ConfigLoadError(MMSServiceError):
    """The site descriptor document could not be read or parsed."""
    def __init__(self, message: str, path: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            service="registry",
            metadata={**(metadata or {}), "path": path},
        )
        self.path = path


class SearchRequestError(MMSServiceError):
    """A search request was rejected before any site was contacted."""
    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message, request_id=request_id, service="aggregator")


class EmptyQueryError(SearchRequestError):
    """The query was blank after trimming."""
    def __init__(self, message: str = "Missing q", request_id: Optional[str] = None):
        super().__init__(message, request_id=request_id)


class NoSitesError(SearchRequestError):
    """The active site registry is empty."""
    def __init__(self, message: str = "No sites configured", request_id: Optional[str] = None):
        super().__init__(message, request_id=request_id)


class FetchError(MMSServiceError):
    """Network, transport, or non-2xx failure while fetching one site.

    Carries the constructed request URL so the caller can open it manually.
    """
    def __init__(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        site_id: Optional[str] = None,
    ):
        super().__init__(
            message,
            service="fetcher",
            metadata={"url": url, "status_code": status_code, "site_id": site_id},
        )
        self.url = url
        self.status_code = status_code
        self.site_id = site_id


def report_error(
    error: Exception,
    request_id: Optional[str] = None,
    service: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None
) -> None:
    """Log an error and forward it to Sentry when error tracking is active."""
    logger.error(f"Error in {service or 'unknown'}: {error}", exc_info=error)

    if not init_sentry():
        return

    try:
        with sentry_sdk.new_scope() as scope:
            if request_id:
                scope.set_tag("request_id", request_id)
            elif isinstance(error, MMSError) and error.request_id:
                scope.set_tag("request_id", error.request_id)

            if service:
                scope.set_tag("service", service)
            elif isinstance(error, MMSError) and error.service:
                scope.set_tag("service", error.service)

            if extra_context:
                for key, value in extra_context.items():
                    scope.set_context(key, value)

            if isinstance(error, MMSError):
                scope.set_context("mms_error", error.to_dict())

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.error(f"Failed to report error to Sentry: {e}")


def format_user_error(error: Exception, include_details: bool = False) -> str:
    """Convert exception to user-facing error message (no stack traces)."""
    if isinstance(error, FetchError):
        return f"Fetch error: {error.message}"

    if isinstance(error, MMSError):
        if error.user_message:
            return error.user_message

        service_name = error.service or "service"
        base_message = f"{service_name.title()} encountered an error"
        if include_details:
            return f"{base_message}: {error.message}"
        return base_message

    if include_details:
        return f"Error ({type(error).__name__}): {str(error)}"
    return "Internal server error"


def map_to_http_status(exc: Exception) -> int:
    """Map exception to the HTTP status code returned to API callers."""
    if isinstance(exc, EmptyQueryError):
        return 400
    if isinstance(exc, NoSitesError):
        return 500

    return 500
