"""
Domain exceptions

NotFoundError and UpstreamUnavailableError are the only failures a workflow
surfaces. Insufficient evidence is a regular gate decision, and metric/audit
write failures never leave the side-effect layer.
"""
from typing import Optional, Dict, Any


class ElasticOpsError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(ElasticOpsError):
    """Referenced entity is absent. Terminal and non-retryable."""

    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} with id '{resource_id}' not found",
            {"resource_type": resource_type, "resource_id": resource_id}
        )


class UpstreamUnavailableError(ElasticOpsError):
    """Document store call failed or timed out."""

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: Optional[int] = None
    ):
        self.operation = operation
        self.status_code = status_code
        super().__init__(
            f"{operation} failed: {message}",
            {"operation": operation, "status_code": status_code}
        )
