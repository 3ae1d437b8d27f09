"""
Unit tests for authentication mechanisms.

Tests Frappe token, Bearer token and Basic authentication, the CSRF
header decorator and the authenticator factory.
"""

import base64

import pytest

from bankrec_matching.models import AuthenticationType, DataSourceConfig
from bankrec_matching.connectors.authentication import (
    AuthenticationError, AuthenticatorFactory, BasicAuthAuthenticator,
    BearerTokenAuthenticator, CSRFTokenDecorator, TokenAuthenticator
)


class TestTokenAuthenticator:
    """Test cases for Frappe token authentication."""

    def test_apply_authentication(self):
        auth = TokenAuthenticator("api-key", "api-secret")
        headers = {"Content-Type": "application/json"}

        result = auth.apply_authentication(headers)

        assert result["Authorization"] == "token api-key:api-secret"
        assert result["Content-Type"] == "application/json"
        assert "Authorization" not in headers
        assert auth.auth_type == AuthenticationType.TOKEN
        assert auth.is_valid() is True


class TestBearerTokenAuthenticator:
    """Test cases for Bearer token authentication."""

    def test_apply_authentication(self):
        auth = BearerTokenAuthenticator("access-token")
        assert auth.apply_authentication({})["Authorization"] == "Bearer access-token"

    def test_missing_token(self):
        auth = BearerTokenAuthenticator("")
        assert auth.is_valid() is False
        with pytest.raises(AuthenticationError):
            auth.apply_authentication({})


class TestBasicAuthAuthenticator:
    """Test cases for Basic authentication."""

    def test_apply_authentication(self):
        auth = BasicAuthAuthenticator("admin", "p@ss")
        header = auth.apply_authentication({})["Authorization"]

        assert header.startswith("Basic ")
        assert base64.b64decode(header[len("Basic "):]).decode("utf-8") == "admin:p@ss"


class TestCSRFTokenDecorator:
    """Test cases for the CSRF header decorator."""

    def test_adds_csrf_header(self):
        auth = CSRFTokenDecorator(TokenAuthenticator("k", "s"), "csrf-123")
        headers = auth.apply_authentication({})

        assert headers["X-Frappe-CSRF-Token"] == "csrf-123"
        assert headers["Authorization"] == "token k:s"
        assert auth.auth_type == AuthenticationType.TOKEN


class TestAuthenticatorFactory:
    """Test cases for AuthenticatorFactory."""

    def test_create_each_type(self):
        assert isinstance(
            AuthenticatorFactory.create_authenticator(AuthenticationType.TOKEN, "k", "s"),
            TokenAuthenticator
        )
        assert isinstance(
            AuthenticatorFactory.create_authenticator(AuthenticationType.BEARER_TOKEN, "t"),
            BearerTokenAuthenticator
        )
        assert isinstance(
            AuthenticatorFactory.create_authenticator(AuthenticationType.BASIC_AUTH, "u", "p"),
            BasicAuthAuthenticator
        )

    def test_token_requires_secret(self):
        with pytest.raises(AuthenticationError):
            AuthenticatorFactory.create_authenticator(AuthenticationType.TOKEN, "k")

    def test_basic_requires_password(self):
        with pytest.raises(AuthenticationError):
            AuthenticatorFactory.create_authenticator(AuthenticationType.BASIC_AUTH, "u", None)

    def test_from_config_with_csrf(self):
        config = DataSourceConfig(
            connection_id="erp",
            base_url="https://erp.example.com",
            api_key="k",
            api_secret="s",
            csrf_token="csrf-1"
        )
        auth = AuthenticatorFactory.from_config(config)

        assert isinstance(auth, CSRFTokenDecorator)
        assert auth.is_valid() is True
