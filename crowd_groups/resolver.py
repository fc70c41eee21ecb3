"""
Group resolution for host applications.

This module drains the direct and nested group listings of a user from a
directory client, page by page, and maps directory failures to the outcomes a
host authorization system expects.
"""

import logging
from typing import Optional, Tuple, List

from crowd_groups.directories.base import (
    GroupDirectoryClient,
    GroupMode,
    PageRequest,
    UserNotFoundError,
    OperationFailedError,
    InvalidAuthenticationError,
    ApplicationPermissionError,
)

logger = logging.getLogger(__name__)

PAGING_SIZE = 100


class GroupResolutionError(Exception):
    """Base exception for failed group lookups."""

    def __init__(self, message: str, username: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.username = username
        self.cause = cause


class GroupLookupError(GroupResolutionError):
    """Raised when the directory could not answer the lookup."""
    pass


class PermissionConfigurationError(GroupResolutionError):
    """Raised when the application's directory credentials are misconfigured."""
    pass


class GroupLookupResult:
    """
    Outcome of a group lookup.

    A result is either found, carrying the (possibly empty) group names, or
    not found, meaning the directory does not know the user and the host should
    defer to another provider.
    """

    __slots__ = ('username', '_groups')

    def __init__(self, username: str, groups: Optional[Tuple[str, ...]]):
        self.username = username
        self._groups = groups

    @classmethod
    def not_found(cls, username: str) -> 'GroupLookupResult':
        return cls(username, None)

    @property
    def found(self) -> bool:
        return self._groups is not None

    @property
    def groups(self) -> Tuple[str, ...]:
        """Group names; raises LookupError for a not-found result."""
        if self._groups is None:
            raise LookupError(f"User {self.username} not found in directory")
        return self._groups

    def __eq__(self, other):
        if not isinstance(other, GroupLookupResult):
            return NotImplemented
        return self.username == other.username and self._groups == other._groups

    def __hash__(self):
        return hash((self.username, self._groups))

    def __repr__(self):
        if self._groups is None:
            return f"GroupLookupResult.not_found({self.username!r})"
        return f"GroupLookupResult({self.username!r}, {list(self._groups)!r})"


class GroupResolver:
    """
    Resolves the complete group list of a user.

    Direct groups are listed first, then nested groups. Duplicates between the
    two listings are kept. Any directory failure aborts the whole lookup.
    """

    def __init__(self, directory_client: GroupDirectoryClient, page_size: int = PAGING_SIZE):
        """
        Initialize resolver.

        Args:
            directory_client: Client used to fetch group pages
            page_size: Number of groups requested per page
        """
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._directory_client = directory_client
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    def _get_groups_for_user(self, username: str, mode: GroupMode) -> List[str]:
        groups = []
        start = 0
        might_have_more = True

        while might_have_more:
            request = PageRequest(username, start, self._page_size, mode)
            new_groups = self._directory_client.fetch_groups(request)
            # A full page never proves exhaustion, so one trailing fetch may come back empty
            if len(new_groups) < self._page_size:
                might_have_more = False
            groups.extend(new_groups)
            start += len(new_groups)

        logger.debug(f"Retrieved {len(groups)} {mode.value} groups for user {username}")
        return groups

    def resolve_groups(self, username: str) -> GroupLookupResult:
        """
        Look up all groups of a user.

        Args:
            username: User name as known to the directory

        Returns:
            Found result with direct groups followed by nested groups, or a
            not-found result if the directory does not know the user

        Raises:
            GroupLookupError: If the directory operation failed
            PermissionConfigurationError: If the application credentials are
                rejected or lack permission
        """
        logger.debug(f"Looking up user groups for user {username}")

        try:
            groups = self._get_groups_for_user(username, GroupMode.DIRECT)
            groups.extend(self._get_groups_for_user(username, GroupMode.NESTED))
        except UserNotFoundError:
            logger.debug(f"User {username} not found in directory")
            return GroupLookupResult.not_found(username)
        except OperationFailedError as e:
            raise GroupLookupError(
                f"Unable to retrieve groups for user {username} from the directory.",
                username, e) from e
        except InvalidAuthenticationError as e:
            raise PermissionConfigurationError(
                f"Unable to retrieve groups for user {username} from the directory. "
                "The application name and password are incorrect.",
                username, e) from e
        except ApplicationPermissionError as e:
            raise PermissionConfigurationError(
                f"Unable to retrieve groups for user {username} from the directory. "
                "The application is not permitted to perform the requested operation "
                "on the directory server.",
                username, e) from e

        return GroupLookupResult(username, tuple(groups))

    def get_groups(self, username: str) -> GroupLookupResult:
        """Host-facing entry point; same contract as resolve_groups."""
        return self.resolve_groups(username)
