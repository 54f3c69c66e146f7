"""
BacklogSync Service Base

Defines the base Service class and ServiceContext that all services inherit from.
This provides a consistent interface for dependency injection and context propagation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from backlogsync.config import Config
from backlogsync.logging import get_logger


@dataclass
class ServiceContext:
    """
    Context object providing shared dependencies and runtime state to services.

    Attributes:
        config: Application configuration
        request_id: Optional request correlation ID for tracing
        metadata: Additional contextual metadata
    """
    config: Config
    request_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_request_id(self, request_id: str) -> "ServiceContext":
        """Return a new context with the specified request_id."""
        return ServiceContext(
            config=self.config,
            request_id=request_id,
            metadata=self.metadata.copy(),
        )

    def with_metadata(self, **kwargs: Any) -> "ServiceContext":
        """Return a new context with additional metadata."""
        return ServiceContext(
            config=self.config,
            request_id=self.request_id,
            metadata={**self.metadata, **kwargs},
        )


class Service:
    """
    Base class for all BacklogSync services.

    Each service receives a ServiceContext providing access to configuration,
    logging, and other shared dependencies.
    """

    def __init__(self, context: ServiceContext) -> None:
        self.context = context
        self.config = context.config
        self.logger = get_logger(self.__class__.__name__)

    def log_extra(
        self,
        *,
        request_id: Optional[str] = None,
        session_id: Optional[int] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        """
        Build a consistent extra dict for structured logging.

        Uses context request_id by default, but can be overridden.
        Only non-None values are included.
        """
        payload: Dict[str, Any] = {}

        effective_request_id = request_id or self.context.request_id
        if effective_request_id is not None:
            payload["request_id"] = effective_request_id
        if session_id is not None:
            payload["session_id"] = session_id

        payload.update({k: v for k, v in extra.items() if v is not None})
        return payload
