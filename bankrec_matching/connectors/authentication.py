"""
Authentication mechanisms for the invoice data source.

Supports Frappe API key/secret tokens, OAuth bearer tokens and HTTP Basic
authentication, plus the CSRF header needed when a browser session cookie
is reused.
"""

import base64
from abc import ABC, abstractmethod
from typing import Dict, Optional

from bankrec_matching.models import AuthenticationType, DataSourceConfig, TransportError

import logging
logger = logging.getLogger(__name__)


class AuthenticationError(TransportError):
    """Exception raised for authentication-related errors."""
    pass


class BaseAuthenticator(ABC):
    """Base class for all authentication mechanisms."""

    def __init__(self, auth_type: AuthenticationType):
        self.auth_type = auth_type
        self.logger = logging.getLogger(f"{__name__}.{auth_type.value}")

    @abstractmethod
    def apply_authentication(self, headers: Dict[str, str]) -> Dict[str, str]:
        """
        Apply authentication to request headers.

        Args:
            headers: Existing request headers

        Returns:
            Updated copy of the headers
        """
        pass

    @abstractmethod
    def is_valid(self) -> bool:
        """Check whether the credentials are usable."""
        pass


class TokenAuthenticator(BaseAuthenticator):
    """Frappe API key and secret, sent as ``Authorization: token key:secret``."""

    def __init__(self, api_key: str, api_secret: str):
        super().__init__(AuthenticationType.TOKEN)
        self.api_key = api_key
        self.api_secret = api_secret
        self.logger.info(f"Token authenticator initialized for key: {api_key[:4]}...")

    def apply_authentication(self, headers: Dict[str, str]) -> Dict[str, str]:
        headers = headers.copy()
        headers['Authorization'] = f'token {self.api_key}:{self.api_secret}'
        return headers

    def is_valid(self) -> bool:
        return bool(self.api_key and self.api_secret)


class BearerTokenAuthenticator(BaseAuthenticator):
    """OAuth access token authentication."""

    def __init__(self, access_token: str):
        super().__init__(AuthenticationType.BEARER_TOKEN)
        self.access_token = access_token

    def apply_authentication(self, headers: Dict[str, str]) -> Dict[str, str]:
        if not self.is_valid():
            raise AuthenticationError("Bearer token is missing")
        headers = headers.copy()
        headers['Authorization'] = f'Bearer {self.access_token}'
        return headers

    def is_valid(self) -> bool:
        return bool(self.access_token)


class BasicAuthAuthenticator(BaseAuthenticator):
    """Basic Authentication handler."""

    def __init__(self, username: str, password: str):
        """
        Initialize Basic auth authenticator.

        Args:
            username: Username (or API key) for authentication
            password: Password (or API secret) for authentication
        """
        super().__init__(AuthenticationType.BASIC_AUTH)
        self.username = username
        self.password = password
        self.logger.info(f"Basic auth authenticator initialized for user: {username}")

    def apply_authentication(self, headers: Dict[str, str]) -> Dict[str, str]:
        """Apply Basic authentication to request headers."""
        credentials = f"{self.username}:{self.password}"
        encoded_credentials = base64.b64encode(credentials.encode('utf-8')).decode('utf-8')

        headers = headers.copy()
        headers['Authorization'] = f'Basic {encoded_credentials}'
        return headers

    def is_valid(self) -> bool:
        """Basic auth credentials don't expire."""
        return bool(self.username and self.password)


class CSRFTokenDecorator(BaseAuthenticator):
    """Adds ``X-Frappe-CSRF-Token`` on top of another authenticator."""

    def __init__(self, inner: BaseAuthenticator, csrf_token: str):
        super().__init__(inner.auth_type)
        self.inner = inner
        self.csrf_token = csrf_token

    def apply_authentication(self, headers: Dict[str, str]) -> Dict[str, str]:
        headers = self.inner.apply_authentication(headers)
        headers['X-Frappe-CSRF-Token'] = self.csrf_token
        return headers

    def is_valid(self) -> bool:
        return self.inner.is_valid()


class AuthenticatorFactory:
    """Factory for creating authenticators based on configuration."""

    @staticmethod
    def create_authenticator(auth_type: AuthenticationType, api_key: str,
                             api_secret: Optional[str] = None,
                             csrf_token: Optional[str] = None) -> BaseAuthenticator:
        """
        Create an authenticator based on type and credentials.

        Args:
            auth_type: Type of authentication
            api_key: API key, access token or username
            api_secret: API secret or password, where the type needs one
            csrf_token: Optional CSRF token added to every request

        Returns:
            Configured authenticator instance

        Raises:
            AuthenticationError: If authenticator cannot be created
        """
        if auth_type == AuthenticationType.TOKEN:
            if not api_key or not api_secret:
                raise AuthenticationError("Token authentication requires an API key and secret")
            authenticator = TokenAuthenticator(api_key, api_secret)

        elif auth_type == AuthenticationType.BEARER_TOKEN:
            if not api_key:
                raise AuthenticationError("Bearer authentication requires an access token")
            authenticator = BearerTokenAuthenticator(api_key)

        elif auth_type == AuthenticationType.BASIC_AUTH:
            if not api_key or not api_secret:
                raise AuthenticationError("Basic authentication requires a username and password")
            authenticator = BasicAuthAuthenticator(api_key, api_secret)

        else:
            raise AuthenticationError(f"Unsupported authentication type: {auth_type}")

        if csrf_token:
            return CSRFTokenDecorator(authenticator, csrf_token)
        return authenticator

    @staticmethod
    def from_config(config: DataSourceConfig) -> BaseAuthenticator:
        return AuthenticatorFactory.create_authenticator(
            config.authentication_type,
            config.api_key,
            api_secret=config.api_secret,
            csrf_token=config.csrf_token
        )
