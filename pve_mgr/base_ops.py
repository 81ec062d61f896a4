#!/usr/bin/env python3
"""Shared plumbing for the resource operation classes."""

import logging
from datetime import datetime
from typing import Any, Dict, NoReturn, Optional

from .output import OutputFormatter
from .pve_api import (
    ErrorKind,
    InvalidInputError,
    PermissionDeniedError,
    ProxmoxVEClient,
    ProxmoxVEError,
    ResourceNotFoundError,
    classify,
    response_data,
)

TIME_FORMAT = '%Y-%m-%d %H:%M:%S'


class ActionRefused(Exception):
    """A per-target action declined to proceed (e.g. resource is running)."""


def format_timestamp(epoch: Any) -> str:
    """Format a unix timestamp as local time, or 'N/A'."""
    try:
        value = int(epoch)
    except (TypeError, ValueError):
        return 'N/A'
    if value <= 0:
        return 'N/A'
    return datetime.fromtimestamp(value).strftime(TIME_FORMAT)


class BaseOperations:
    """Base class holding the client, formatter and error handling."""

    def __init__(self, client: ProxmoxVEClient, formatter: Optional[OutputFormatter] = None):
        """Initialize operations.

        Args:
            client: Proxmox VE API client
            formatter: Output formatter. If None, a pretty formatter is created.
        """
        self.client = client
        self.formatter = formatter or OutputFormatter()
        self.logger = logging.getLogger(self.__class__.__module__)

    def get_data(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a path and return the envelope's data member."""
        if params:
            return response_data(self.client.get(path, params))
        return response_data(self.client.get(path))

    def post_data(self, path: str, data: Optional[Dict[str, Any]] = None) -> Any:
        """POST form data and return the envelope's data member (usually a task UPID)."""
        if data:
            return response_data(self.client.post(path, data))
        return response_data(self.client.post(path))

    def delete_data(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if params:
            return response_data(self.client.delete(path, params))
        return response_data(self.client.delete(path))

    def handle_error(self, operation: str, error: Exception) -> NoReturn:
        """Log a failure and re-raise it as a classified error.

        Args:
            operation: What was being attempted, e.g. "start VM 100"
            error: The original exception

        Raises:
            ResourceNotFoundError, PermissionDeniedError, InvalidInputError
            or ProxmoxVEError, chained to the original
        """
        self.logger.error(f"Failed to {operation}: {error}")

        if isinstance(error, (ResourceNotFoundError, PermissionDeniedError, InvalidInputError)):
            raise error

        kind = classify(error)
        if kind is ErrorKind.NOT_FOUND:
            raise ResourceNotFoundError(f"Resource not found: {error}") from error
        if kind is ErrorKind.PERMISSION_DENIED:
            raise PermissionDeniedError(f"Permission denied: {error}") from error
        if kind is ErrorKind.INVALID:
            raise InvalidInputError(f"Invalid input: {error}") from error
        raise ProxmoxVEError(f"Failed to {operation}: {error}", ErrorKind.OTHER) from error

    def error_payload(self, action: str, error: Exception) -> str:
        """Log a failure and render it as a JSON error payload."""
        self.logger.error(f"{action}: {error}")
        return self.formatter.error_payload(action, error)
