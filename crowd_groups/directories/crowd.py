"""
Atlassian Crowd directory client.

Lists a user's direct and nested groups through the Crowd usermanagement REST
API, authenticating as a Crowd application with basic auth.
"""

import json
import ssl
import base64
import logging
from typing import Dict, List, Any, Optional, Tuple, Union
from urllib.parse import urlparse, urlencode
from http.client import HTTPSConnection, HTTPConnection, HTTPException

from crowd_groups.retry import retry_call, retry_settings, create_retry_callback, MaxRetriesExceeded
from .base import (
    GroupDirectoryClient,
    UserNotFoundError,
    OperationFailedError,
    InvalidAuthenticationError,
    ApplicationPermissionError,
)

logger = logging.getLogger(__name__)


class CrowdDirectoryClient(GroupDirectoryClient):
    """
    Crowd REST API client.

    Each page is a single GET request; transport failures are retried
    according to the ``error_handling`` settings, HTTP error responses are not.
    """

    REST_PATH = '/rest/usermanagement/1'

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.base_url = config['base_url']
        self.application_name = config['application_name']
        self.application_password = config['application_password']
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')
        self.timeout = config.get('timeout', 30)
        self.retry_options = retry_settings(config.get('error_handling', {}))

        self.parsed_url = urlparse(self.base_url)
        self.host = self.parsed_url.netloc
        self.base_path = self.parsed_url.path.rstrip('/')

        self.ssl_context = None

        credentials = base64.b64encode(
            f"{self.application_name}:{self.application_password}".encode()).decode()
        self.headers = {
            'Authorization': f"Basic {credentials}",
            'Accept': 'application/json',
        }

        self._setup_ssl_context()

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if self.parsed_url.scheme != 'https':
            return

        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.host}")
            return

        self.ssl_context = ssl.create_default_context()
        if self.ca_cert_file:
            self.ssl_context.load_verify_locations(cafile=self.ca_cert_file)
            logger.debug(f"Using CA certificate file: {self.ca_cert_file}")

    def _new_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        if self.parsed_url.scheme == 'https':
            return HTTPSConnection(self.host, context=self.ssl_context, timeout=self.timeout)
        return HTTPConnection(self.host, timeout=self.timeout)

    def _send(self, path: str) -> Tuple[int, str, str]:
        # One connection per request; the client is shared by concurrent lookups
        conn = self._new_connection()
        try:
            conn.request('GET', path, headers=self.headers)
            response = conn.getresponse()
            return response.status, response.reason, response.read().decode('utf-8')
        except ssl.SSLError as e:
            raise OperationFailedError(f"TLS error talking to Crowd at {self.host}: {e}") from e
        finally:
            conn.close()

    def _request(self, path: str) -> Tuple[int, str, str]:
        logger.debug(f"Making GET request to {self.host}{path}")
        try:
            status, reason, body = retry_call(
                self._send, (path,),
                exceptions=(OSError, HTTPException),
                on_retry=create_retry_callback(f"Crowd request to {self.host}"),
                **self.retry_options
            )
        except MaxRetriesExceeded as e:
            raise OperationFailedError(f"Connection error to Crowd at {self.host}: {e.last_exception}") from e

        logger.debug(f"Response status: {status} {reason}")
        return status, reason, body

    def _error_reason(self, body: str) -> Optional[str]:
        try:
            return json.loads(body).get('reason') if body else None
        except (ValueError, AttributeError):
            return None

    def _raise_for_status(self, status: int, reason: str, body: str, username: str):
        error_reason = self._error_reason(body)

        if status == 401:
            raise InvalidAuthenticationError(
                f"Crowd rejected credentials of application {self.application_name}")
        if status == 403:
            raise ApplicationPermissionError(
                f"Application {self.application_name} is not permitted to list groups "
                f"({error_reason or reason})")
        if status == 404 and error_reason == 'USER_NOT_FOUND':
            raise UserNotFoundError(f"User {username} does not exist in Crowd")
        raise OperationFailedError(f"HTTP {status}: {reason} ({error_reason or 'no reason given'})")

    def _fetch(self, membership: str, username: str, start: int, page_size: int) -> List[str]:
        query = urlencode({'username': username, 'start-index': start, 'max-results': page_size})
        path = f"{self.base_path}{self.REST_PATH}/user/group/{membership}?{query}"

        status, reason, body = self._request(path)
        if status >= 400:
            self._raise_for_status(status, reason, body, username)

        try:
            payload = json.loads(body) if body else {}
            return [group['name'] for group in payload.get('groups', [])]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise OperationFailedError(f"Invalid group listing from Crowd: {e}") from e

    def fetch_direct_groups(self, username: str, start: int, page_size: int) -> List[str]:
        return self._fetch('direct', username, start, page_size)

    def fetch_nested_groups(self, username: str, start: int, page_size: int) -> List[str]:
        return self._fetch('nested', username, start, page_size)
