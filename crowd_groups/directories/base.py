"""
Base directory client interface and common functionality.

This module defines the abstract base class that every group directory backend
must implement, the page request type passed to it, and the failures a backend
may raise while listing a user's groups.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Any, NamedTuple

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """Base exception for directory client errors."""
    pass


class UserNotFoundError(DirectoryError):
    """Raised when the directory has no user with the requested name."""
    pass


class OperationFailedError(DirectoryError):
    """Raised when the directory operation fails on the backend or transport."""
    pass


class InvalidAuthenticationError(DirectoryError):
    """Raised when the directory rejects the application's own credentials."""
    pass


class ApplicationPermissionError(DirectoryError):
    """Raised when the application is not allowed to perform the query."""
    pass


class GroupMode(Enum):
    """Which membership listing a page request targets."""
    DIRECT = 'direct'
    NESTED = 'nested'


class PageRequest(NamedTuple):
    """A single page of a user's group listing."""
    username: str
    start: int
    page_size: int
    mode: GroupMode


class GroupDirectoryClient(ABC):
    """
    Abstract base class for group directory backends.

    Backends return plain group names in the order the directory reports them.
    Retry policy and timeouts, if any, are implemented by the backend.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize directory client.

        Args:
            config: Directory configuration dictionary
        """
        self.config = config
        self.name = config.get('name', self.__class__.__name__)

    def fetch_groups(self, request: PageRequest) -> List[str]:
        """
        Fetch one page of groups for the mode named in the request.

        Args:
            request: Page request

        Returns:
            List of group names, at most request.page_size long
        """
        if request.mode is GroupMode.NESTED:
            return self.fetch_nested_groups(request.username, request.start, request.page_size)
        return self.fetch_direct_groups(request.username, request.start, request.page_size)

    @abstractmethod
    def fetch_direct_groups(self, username: str, start: int, page_size: int) -> List[str]:
        """
        Get a page of groups the user is an explicit member of.

        Args:
            username: User name as known to the directory
            start: Zero-based offset of the first group to return
            page_size: Maximum number of groups to return

        Returns:
            List of group names

        Raises:
            UserNotFoundError, OperationFailedError,
            InvalidAuthenticationError, ApplicationPermissionError
        """
        pass

    @abstractmethod
    def fetch_nested_groups(self, username: str, start: int, page_size: int) -> List[str]:
        """
        Get a page of groups the user belongs to directly or through other groups.

        Args:
            username: User name as known to the directory
            start: Zero-based offset of the first group to return
            page_size: Maximum number of groups to return

        Returns:
            List of group names

        Raises:
            UserNotFoundError, OperationFailedError,
            InvalidAuthenticationError, ApplicationPermissionError
        """
        pass

    def close(self):
        """Release any connection held by the client."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
