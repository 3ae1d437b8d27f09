"""
REST connector for Frappe/ERPNext invoice lists.

Runs ``frappe.client.get_list`` queries over HTTP with ``requests`` and
turns every transport-level failure into ``TransportError``.
"""

import time
from typing import Any, Dict, List, Optional

import requests

from bankrec_matching.models import ConnectionTestResult, DataSourceConfig
from bankrec_matching.planner import InvoiceQuery
from .authentication import AuthenticatorFactory, BaseAuthenticator
from .base_connector import BaseConnector, ConnectorError

import logging
logger = logging.getLogger(__name__)

GET_LIST_METHOD = 'frappe.client.get_list'
LOGGED_USER_METHOD = 'frappe.auth.get_logged_user'


class FrappeConnector(BaseConnector):
    """
    Invoice data source backed by a Frappe site's REST API.

    Each query is a single POST; there is no retry. Failures surface as
    ConnectorError (a TransportError) carrying a readable message.
    """

    def __init__(self, config: DataSourceConfig, session: Optional[requests.Session] = None):
        """
        Initialize Frappe connector.

        Args:
            config: Data source configuration
            session: Optional requests session to reuse
        """
        super().__init__(config.connection_id)
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        self.authenticator = self._create_authenticator()

        self.logger.info(f"Frappe connector initialized for {config.base_url}")

    def _create_authenticator(self) -> BaseAuthenticator:
        authenticator = AuthenticatorFactory.from_config(self.config)
        self.logger.info(f"Created {self.config.authentication_type.value} authenticator")
        return authenticator

    def _method_url(self, method: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/api/method/{method}"

    def _headers(self) -> Dict[str, str]:
        headers = self.authenticator.apply_authentication({'Content-Type': 'application/json'})
        if self.config.additional_headers:
            headers.update(self.config.additional_headers)
        return headers

    def get_list(self, query: InvoiceQuery) -> List[Dict[str, Any]]:
        """
        Run a ``frappe.client.get_list`` query.

        Returns:
            List of raw invoice records

        Raises:
            ConnectorError: On network failure, HTTP error status or a body
                that is not the expected JSON
        """
        url = self._method_url(GET_LIST_METHOD)
        payload = query.to_payload()
        start_time = time.perf_counter()

        try:
            response = self.session.request(
                method='POST',
                url=url,
                headers=self._headers(),
                json=payload,
                timeout=self.config.timeout
            )
        except requests.exceptions.Timeout:
            raise self._handle_error(
                f"{query.stage.value} query",
                TimeoutError(f"Request timed out after {self.config.timeout}s")
            )
        except requests.exceptions.RequestException as e:
            raise self._handle_error(f"{query.stage.value} query", e)

        duration = time.perf_counter() - start_time

        if response.status_code >= 400:
            self._connection_healthy = False
            self._log_operation(f"POST {url}", duration, False, f"Status: {response.status_code}")
            raise ConnectorError(f"HTTP error {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError:
            self._log_operation(f"POST {url}", duration, False, "Invalid JSON")
            raise ConnectorError("Data source returned a response that is not valid JSON")

        records = data.get('message') if isinstance(data, dict) else None
        if records is None:
            records = []
        if not isinstance(records, list):
            raise ConnectorError(f"Unexpected response shape: {type(records).__name__}")

        self._connection_healthy = True
        self._log_operation(f"POST {url}", duration, True,
                            f"{query.stage.value} stage returned {len(records)} records")
        return records

    def test_connection(self) -> ConnectionTestResult:
        """
        Test the connection by asking the site for the logged-in user.

        Returns:
            ConnectionTestResult with test status and details
        """
        start_time = time.perf_counter()
        url = self._method_url(LOGGED_USER_METHOD)

        try:
            response, duration = self._measure_time(
                self.session.get,
                url,
                headers=self._headers(),
                timeout=self.config.timeout
            )
            success = response.status_code < 400

            additional_info = {
                'status_code': response.status_code,
                'base_url': self.config.base_url,
                'authentication_type': self.config.authentication_type.value
            }
            if success:
                try:
                    additional_info['user'] = response.json().get('message')
                except ValueError:
                    pass

            result = ConnectionTestResult(
                success=success,
                connection_id=self.connection_id,
                response_time=duration,
                error_message=None if success else f"HTTP {response.status_code}: {response.text[:200]}",
                additional_info=additional_info
            )
            self._log_operation("Connection test", duration, success,
                                f"Status: {response.status_code}")

        except requests.exceptions.RequestException as e:
            duration = time.perf_counter() - start_time
            result = ConnectionTestResult(
                success=False,
                connection_id=self.connection_id,
                response_time=duration,
                error_message=str(e),
                additional_info={'base_url': self.config.base_url}
            )
            self._log_operation("Connection test", duration, False, str(e))

        self._last_connection_test = result
        self._connection_healthy = result.success
        return result

    def get_connection_info(self) -> Dict[str, Any]:
        """
        Get information about the connection.

        Returns:
            Dictionary containing connection metadata
        """
        return {
            'connection_id': self.connection_id,
            'connection_type': 'FRAPPE_REST',
            'base_url': self.config.base_url,
            'authentication_type': self.config.authentication_type.value,
            'company': self.config.company,
            'timeout': self.config.timeout,
            'healthy': self.is_healthy(),
            'last_test': self._last_connection_test.to_dict() if self._last_connection_test else None
        }

    def close(self):
        self.session.close()
