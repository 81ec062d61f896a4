#!/usr/bin/env python3
"""Proxmox VE API client with error classification."""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from . import __version__

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Failure categories callers can react to."""
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    INVALID = "invalid"
    OTHER = "other"


# HTTP status -> error kind
STATUS_KINDS = {
    400: ErrorKind.INVALID,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.NOT_FOUND,
}


def classify_message(message: Optional[str]) -> ErrorKind:
    """Classify a free-text error message.

    PVE reports most failures as HTTP 500 with a text reason, so the message
    is the only signal left for those.
    """
    if not message:
        return ErrorKind.OTHER
    lower = message.lower()
    if 'not found' in lower or 'does not exist' in lower:
        return ErrorKind.NOT_FOUND
    if 'permission denied' in lower:
        return ErrorKind.PERMISSION_DENIED
    if 'invalid' in lower:
        return ErrorKind.INVALID
    return ErrorKind.OTHER


class ProxmoxVEError(Exception):
    """Proxmox VE related error carrying an ErrorKind."""

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.kind = kind if kind is not None else classify_message(message)


class ResourceNotFoundError(ProxmoxVEError):
    def __init__(self, message: str):
        super().__init__(message, ErrorKind.NOT_FOUND)


class PermissionDeniedError(ProxmoxVEError):
    def __init__(self, message: str):
        super().__init__(message, ErrorKind.PERMISSION_DENIED)


class InvalidInputError(ProxmoxVEError):
    def __init__(self, message: str):
        super().__init__(message, ErrorKind.INVALID)


def classify(error: BaseException) -> ErrorKind:
    """Return the kind of an error, preferring a kind set by the client."""
    kind = getattr(error, 'kind', None)
    if isinstance(kind, ErrorKind) and kind is not ErrorKind.OTHER:
        return kind
    return classify_message(str(error))


def response_data(envelope: Optional[Dict[str, Any]]) -> Any:
    """Extract the data member of an API envelope."""
    if not isinstance(envelope, dict):
        return None
    return envelope.get('data')


class ProxmoxVEClient:
    """Synchronous Proxmox VE API client.

    Paths are relative to /api2/json, e.g. ``/nodes/pve1/lxc``. Every call
    returns the decoded JSON envelope; the payload lives under ``data``.
    """

    def __init__(self, host: str, username: str = None, password: str = None,
                 api_token_id: str = None, api_token_secret: str = None,
                 verify_ssl: bool = False, timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.host = host.rstrip('/')
        self.username = username
        self.password = password
        self.api_token_id = api_token_id
        self.api_token_secret = api_token_secret
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session: Optional[httpx.Client] = None
        self.ticket = None
        self.csrf_token = None
        self._transport = transport
        self._authenticated = False
        self._use_api_token = bool(api_token_id and api_token_secret)

    @classmethod
    def from_config(cls, config) -> 'ProxmoxVEClient':
        """Build a client from a Config instance."""
        config.validate()
        return cls(
            host=config.host,
            username=config.username or None,
            password=config.password or None,
            api_token_id=config.api_token_id or None,
            api_token_secret=config.api_token_secret or None,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout
        )

    @property
    def base_url(self) -> str:
        return f"{self.host}/api2/json"

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def open(self) -> None:
        """Open the HTTP session."""
        if self.session is not None:
            return
        kwargs = {}
        if self._transport is not None:
            kwargs['transport'] = self._transport
        self.session = httpx.Client(
            verify=self.verify_ssl,
            timeout=httpx.Timeout(self.timeout),
            headers={
                'User-Agent': f'PVE-Resource-Manager/{__version__}',
                'Accept': 'application/json'
            },
            **kwargs
        )
        logger.debug(f"Opened PVE session for {self.host} (verify_ssl={self.verify_ssl})")

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
        self._authenticated = False

    def authenticate(self) -> None:
        """Set up API token headers or fetch a login ticket."""
        if self._authenticated:
            return
        if self.session is None:
            self.open()

        if self._use_api_token:
            self.session.headers.update({
                'Authorization': f'PVEAPIToken={self.api_token_id}={self.api_token_secret}'
            })
            self._authenticated = True
            return

        if not self.username or not self.password:
            raise ProxmoxVEError("Username and password are required for ticket authentication",
                                 ErrorKind.INVALID)

        try:
            logger.info(f"Authenticating to Proxmox VE at {self.host}")
            response = self.session.post(
                f"{self.base_url}/access/ticket",
                data={'username': self.username, 'password': self.password}
            )
        except httpx.RequestError as e:
            raise ProxmoxVEError(f"Network error during authentication: {e}")

        if response.status_code == 401:
            raise ProxmoxVEError("Authentication failed: Invalid username or password",
                                 ErrorKind.PERMISSION_DENIED)
        if response.status_code >= 400:
            raise ProxmoxVEError(f"Authentication failed: HTTP {response.status_code}",
                                 STATUS_KINDS.get(response.status_code))

        data = response_data(self._decode(response)) or {}
        if not data.get('ticket'):
            raise ProxmoxVEError("Authentication failed: No ticket received")

        self.ticket = data['ticket']
        self.csrf_token = data.get('CSRFPreventionToken')
        self.session.cookies.set('PVEAuthCookie', self.ticket)
        if self.csrf_token:
            self.session.headers.update({'CSRFPreventionToken': self.csrf_token})
        self._authenticated = True

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            raise ProxmoxVEError(f"Invalid JSON response: HTTP {response.status_code}")
        if payload is None:
            raise ProxmoxVEError("Proxmox API error: no response")
        return payload

    @staticmethod
    def _clean(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Drop None values from query or form parameters."""
        if not values:
            return None
        cleaned = {k: v for k, v in values.items() if v is not None}
        return cleaned or None

    def _make_request(self, method: str, path: str, params: Optional[Dict] = None,
                      data: Optional[Dict] = None, _reauth: bool = True) -> Dict[str, Any]:
        """Make HTTP request and validate the response envelope."""
        self.authenticate()

        url = f"{self.base_url}{path}"
        params = self._clean(params)
        data = self._clean(data)
        logger.debug(f"PVE API request: {method} {path}")

        try:
            response = self.session.request(method, url, params=params, data=data)
        except httpx.RequestError as e:
            logger.error(f"PVE API request failed: {method} {path}: {e}")
            raise ProxmoxVEError(f"Network error: {e}")

        if response.status_code == 401 and not self._use_api_token and _reauth:
            logger.warning("Ticket expired, re-authenticating...")
            self._authenticated = False
            self.authenticate()
            return self._make_request(method, path, params, data, _reauth=False)

        if response.status_code >= 400:
            detail = response.reason_phrase or ''
            try:
                errors = response.json().get('errors')
            except (ValueError, AttributeError):
                errors = None
            if errors:
                detail = f"{detail} {errors}".strip()
            logger.error(f"PVE API error for {method} {path}: {response.status_code} {detail}")
            raise ProxmoxVEError(
                f"Proxmox API error: {response.status_code} {detail}",
                STATUS_KINDS.get(response.status_code)
            )

        payload = self._decode(response)
        if isinstance(payload, dict) and payload.get('errors'):
            logger.error(f"PVE API error for {method} {path}: {payload['errors']}")
            raise ProxmoxVEError(f"Proxmox API error: {payload['errors']}")

        if method in ('POST', 'PUT', 'DELETE'):
            logger.info(f"PVE API change ok: {method} {path} -> {response.status_code}")
        return payload

    def get(self, path: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        """Send GET request"""
        return self._make_request('GET', path, params=params)

    def post(self, path: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """Send POST request with form data"""
        return self._make_request('POST', path, data=data)

    def put(self, path: str, data: Optional[Dict] = None) -> Dict[str, Any]:
        """Send PUT request with form data"""
        return self._make_request('PUT', path, data=data)

    def delete(self, path: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        """Send DELETE request"""
        return self._make_request('DELETE', path, params=params)
