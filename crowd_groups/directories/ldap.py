"""
LDAP directory client.

Resolves group memberships from an LDAP directory such as Active Directory.
Direct groups are the groups listing the user as a member; nested groups come
from the in-chain matching rule, which the server evaluates itself.
"""

import ssl
import threading
import logging
from typing import Dict, List, Any, Optional
from ldap3 import Server, Connection, SUBTREE, ALL, Tls
from ldap3.core.exceptions import LDAPException, LDAPSocketOpenError
from ldap3.core.results import (
    RESULT_SUCCESS,
    RESULT_INVALID_CREDENTIALS,
    RESULT_INSUFFICIENT_ACCESS_RIGHTS,
)
from ldap3.utils.conv import escape_filter_chars

from crowd_groups.retry import retry_call, retry_settings, create_retry_callback, MaxRetriesExceeded
from .base import (
    GroupDirectoryClient,
    DirectoryError,
    UserNotFoundError,
    OperationFailedError,
    InvalidAuthenticationError,
    ApplicationPermissionError,
)

logger = logging.getLogger(__name__)

# LDAP_MATCHING_RULE_IN_CHAIN
IN_CHAIN_RULE = '1.2.840.113556.1.4.1941'


class LDAPDirectoryClient(GroupDirectoryClient):
    """
    LDAP group directory.

    Paging is applied client side: the full listing is read, sorted by group
    name and sliced, so offsets stay stable between page requests.
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.server_url = config['server_url']
        self.bind_dn = config['bind_dn']
        self.bind_password = config['bind_password']
        self.user_base_dn = config.get('user_base_dn', '')
        self.group_base_dn = config.get('group_base_dn', '') or self.user_base_dn
        self.user_filter = config.get('user_filter', '(objectClass=person)')
        self.group_filter = config.get('group_filter', '(objectClass=group)')
        self.username_attribute = config.get('username_attribute', 'sAMAccountName')
        self.group_name_attribute = config.get('group_name_attribute', 'cn')

        # SSL/TLS configuration
        self.use_ssl = config.get('use_ssl', self.server_url.lower().startswith('ldaps://'))
        self.start_tls = config.get('start_tls', False)
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')
        self.cert_file = config.get('cert_file')
        self.key_file = config.get('key_file')

        self.connection_timeout = config.get('connection_timeout', 10)
        self.receive_timeout = config.get('receive_timeout', 10)
        self.retry_options = retry_settings(config.get('error_handling', {}))

        self.server = None
        self.connection = None
        self._connected = False
        self._lock = threading.RLock()

    def connect(self):
        """
        Establish and bind the LDAP connection, retrying socket failures.

        Raises:
            InvalidAuthenticationError: If the bind credentials are rejected
            ApplicationPermissionError: If the bind account may not bind
            OperationFailedError: If the server cannot be reached
        """
        try:
            self.server = Server(
                self.server_url,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                get_info=ALL,
                connect_timeout=self.connection_timeout
            )
        except LDAPException as e:
            raise OperationFailedError(f"Failed to create LDAP server: {e}") from e

        try:
            self.connection = retry_call(
                self._open_and_bind,
                exceptions=(LDAPSocketOpenError,),
                on_retry=create_retry_callback(f"LDAP connection to {self.server_url}"),
                **self.retry_options
            )
        except MaxRetriesExceeded as e:
            raise OperationFailedError(
                f"Failed to connect to LDAP after {e.attempts} attempts: {e.last_exception}") from e
        except LDAPException as e:
            raise OperationFailedError(f"Unexpected error during LDAP connection: {e}") from e

        self._connected = True
        logger.info(f"Successfully connected and bound to LDAP server {self.server_url}")

    def _open_and_bind(self) -> Connection:
        connection = Connection(
            self.server,
            user=self.bind_dn,
            password=self.bind_password,
            auto_bind=False,
            receive_timeout=self.receive_timeout
        )
        connection.open()

        try:
            if self.start_tls and not self.use_ssl:
                if not connection.start_tls():
                    raise OperationFailedError(f"Failed to start TLS: {connection.result}")
                logger.debug("StartTLS negotiation successful")

            if not connection.bind():
                raise self._error_for_result(connection.result, "Bind failed")
        except (DirectoryError, LDAPException):
            connection.unbind()
            raise

        return connection

    def _create_tls_config(self) -> Optional[Tls]:
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {}

        if not self.verify_ssl:
            tls_config['validate'] = ssl.CERT_NONE
            logger.warning("SSL certificate verification disabled")
        else:
            tls_config['validate'] = ssl.CERT_REQUIRED

        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file
            logger.debug(f"Using CA certificate file: {self.ca_cert_file}")

        # Client certificate for mutual TLS
        if self.cert_file and self.key_file:
            tls_config['local_certificate_file'] = self.cert_file
            tls_config['local_private_key_file'] = self.key_file

        try:
            return Tls(**tls_config)
        except LDAPException as e:
            raise OperationFailedError(f"Failed to create TLS configuration: {e}") from e

    def _error_for_result(self, result: Dict[str, Any], action: str) -> DirectoryError:
        code = result.get('result')
        message = f"{action}: {result.get('description')} {result.get('message', '')}".strip()
        if code == RESULT_INVALID_CREDENTIALS:
            return InvalidAuthenticationError(message)
        if code == RESULT_INSUFFICIENT_ACCESS_RIGHTS:
            return ApplicationPermissionError(message)
        return OperationFailedError(message)

    def _search(self, search_base: str, search_filter: str, attributes: List[str]) -> list:
        logger.debug(f"Searching with filter: {search_filter} in base: {search_base}")

        # A SYNC connection keeps the last result on itself, so search and read under one lock
        with self._lock:
            if not self._connected:
                self.connect()

            try:
                self.connection.search(
                    search_base=search_base,
                    search_filter=search_filter,
                    search_scope=SUBTREE,
                    attributes=attributes
                )
            except LDAPException as e:
                self.disconnect()
                raise OperationFailedError(f"LDAP query failed: {e}") from e

            result = self.connection.result
            entries = list(self.connection.entries)

        if result.get('result') != RESULT_SUCCESS:
            raise self._error_for_result(result, "Search failed")
        return entries

    def _get_domain_base(self) -> str:
        if self.user_base_dn:
            return self.user_base_dn

        if 'DC=' in self.bind_dn.upper():
            parts = self.bind_dn.split(',')
            dc_parts = [part.strip() for part in parts if part.strip().upper().startswith('DC=')]
            if dc_parts:
                return ','.join(dc_parts)

        if self.server and self.server.info and self.server.info.naming_contexts:
            return self.server.info.naming_contexts[0]

        raise OperationFailedError("Cannot determine domain base DN")

    def _find_user_dn(self, username: str) -> str:
        search_base = self._get_domain_base()
        search_filter = f"(&{self.user_filter}({self.username_attribute}={escape_filter_chars(username)}))"
        entries = self._search(search_base, search_filter, [self.username_attribute])
        if not entries:
            raise UserNotFoundError(f"User {username} not found under {search_base}")
        return entries[0].entry_dn

    @staticmethod
    def _page(names: List[str], start: int, page_size: int) -> List[str]:
        return sorted(names, key=str.lower)[start:start + page_size]

    def fetch_direct_groups(self, username: str, start: int, page_size: int) -> List[str]:
        user_dn = escape_filter_chars(self._find_user_dn(username))
        return self._page(self._group_names(f"(member={user_dn})"), start, page_size)

    def fetch_nested_groups(self, username: str, start: int, page_size: int) -> List[str]:
        user_dn = escape_filter_chars(self._find_user_dn(username))
        return self._page(self._group_names(f"(member:{IN_CHAIN_RULE}:={user_dn})"), start, page_size)

    def _group_names(self, member_filter: str) -> List[str]:
        """Names of groups matching the member filter, read from group_name_attribute."""
        search_filter = f"(&{self.group_filter}{member_filter})"
        entries = self._search(self.group_base_dn or self._get_domain_base(), search_filter,
                               [self.group_name_attribute])

        names = []
        for entry in entries:
            values = entry.entry_attributes_as_dict.get(self.group_name_attribute)
            if values:
                names.append(values[0])
            else:
                logger.warning(f"Group entry has no {self.group_name_attribute}: {entry.entry_dn}")
        return names

    def disconnect(self):
        """Close LDAP connection."""
        with self._lock:
            if not self.connection:
                return
            try:
                self.connection.unbind()
                logger.debug("LDAP connection closed")
            except LDAPException as e:
                logger.warning(f"Error closing LDAP connection: {e}")
            finally:
                self._connected = False
                self.connection = None

    def close(self):
        self.disconnect()
