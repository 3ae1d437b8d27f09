"""
Integration tests for the HTTP API using the Flask test client.
"""

from bankrec_matching.api import create_app
from bankrec_matching.config.match_configuration import MatchSettingsService
from bankrec_matching.connectors.memory_connector import InMemoryConnector
from bankrec_matching.orchestrator import SearchOrchestrator


RECORDS = [
    {
        'name': 'SINV-1', 'customer': 'CUST-A', 'customer_name': 'Acme Ltd',
        'posting_date': '2024-01-01', 'grand_total': 1000, 'outstanding_amount': 1000,
        'status': 'Unpaid', 'due_date': None, 'currency': 'INR'
    },
    {
        'name': 'SINV-2', 'customer': 'CUST-B', 'customer_name': 'Beta Corp',
        'posting_date': '2024-01-02', 'grand_total': 3000, 'outstanding_amount': 3000,
        'status': 'Overdue', 'due_date': '2024-02-01', 'currency': 'INR'
    },
]


class TestMatchingAPI:
    """Test cases for the matching API endpoints."""

    def setup_method(self):
        """Setup test environment."""
        self.connector = InMemoryConnector(RECORDS)
        self.settings = MatchSettingsService()
        self.orchestrator = SearchOrchestrator(self.connector, self.settings)
        self.client = create_app(self.orchestrator).test_client()

    def test_health(self):
        response = self.client.get('/health')

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['connection']['connection_type'] == 'IN_MEMORY'

    def test_match_deposit(self):
        response = self.client.post('/match', json={'name': 'BT-1', 'deposit': 1000})

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'ready'
        assert data['source'] == 'exact'
        assert [invoice['name'] for invoice in data['invoices']] == ['SINV-1']
        assert data['match_amount'] == '1000'

        assert self.client.get('/match').get_json() == data

    def test_match_withdrawal_is_idle(self):
        response = self.client.post('/match', json={'name': 'BT-2', 'amount': -1000})

        assert response.status_code == 200
        assert response.get_json()['status'] == 'idle'
        assert 'sales_invoice' not in \
            self.client.get('/settings').get_json()['settings']['enabled_filters']

    def test_match_rejects_malformed_payload(self):
        response = self.client.post('/match', data='not json', content_type='application/json')
        assert response.status_code == 400

        response = self.client.post('/match', json={'deposit': 1000})
        assert response.status_code == 400
        assert 'name' in response.get_json()['error']

        response = self.client.post('/match', json={'name': 'BT-3', 'deposit': 'lots'})
        assert response.status_code == 400

    def test_retry_and_show_all(self):
        self.client.post('/match', json={'name': 'BT-1', 'deposit': 1000})

        retry = self.client.post('/match/retry').get_json()
        assert retry['status'] == 'ready'
        assert retry['source'] == 'exact'

        show_all = self.client.post('/match/show-all').get_json()
        assert show_all['source'] == 'debug'
        assert [invoice['name'] for invoice in show_all['invoices']] == ['SINV-1', 'SINV-2']

    def test_search_amount(self):
        self.client.post('/match', json={'name': 'BT-1', 'deposit': 1000})

        data = self.client.post('/match/search-amount', json={'amount': '3000'}).get_json()
        assert data['status'] == 'ready'
        assert data['match_amount'] == '3000'
        assert [invoice['name'] for invoice in data['invoices']] == ['SINV-2']

        response = self.client.post('/match/search-amount', json={'amount': 'lots'})
        assert response.status_code == 400
        assert self.client.post('/match/search-amount', json={}).status_code == 400

    def test_get_settings(self):
        data = self.client.get('/settings').get_json()

        assert data['accepted'] is True
        assert data['settings']['round_off_tolerance'] == 100
        assert data['withdrawal_active'] is False

    def test_round_off_update(self):
        data = self.client.put('/settings/round-off', json={'value': '50'}).get_json()

        assert data['accepted'] is True
        assert data['settings']['round_off_tolerance'] == 50

    def test_invalid_round_off_is_rejected(self):
        for value in (0, -1, 'abc', None):
            response = self.client.put('/settings/round-off', json={'value': value})
            assert response.status_code == 200
            assert response.get_json()['accepted'] is False
        assert self.settings.current.round_off_tolerance == 100

    def test_sort_update(self):
        data = self.client.put('/settings/sort', json={'field': 'due_date', 'order': 'desc'}).get_json()

        assert data['accepted'] is True
        assert data['settings']['sort_field'] == 'due_date'
        assert data['settings']['sort_order'] == 'desc'

    def test_invalid_sort_is_rejected(self):
        data = self.client.put('/settings/sort', json={'field': 'amount'}).get_json()

        assert data['accepted'] is False
        assert data['settings']['sort_field'] == 'outstanding_amount'

    def test_filter_update(self):
        data = self.client.put('/settings/filters/group_by_customer', json={'enabled': True}).get_json()
        assert data['accepted'] is True
        assert 'group_by_customer' in data['settings']['enabled_filters']

        # Toggle without an explicit state
        data = self.client.put('/settings/filters/group_by_customer').get_json()
        assert data['accepted'] is True
        assert 'group_by_customer' not in data['settings']['enabled_filters']

    def test_unknown_filter_is_rejected(self):
        data = self.client.put('/settings/filters/bogus', json={'enabled': True}).get_json()
        assert data['accepted'] is False

    def test_sales_invoice_rejected_during_withdrawal(self):
        self.client.post('/match', json={'name': 'BT-2', 'withdrawal': 500})

        data = self.client.put('/settings/filters/sales_invoice', json={'enabled': True}).get_json()

        assert data['accepted'] is False
        assert data['withdrawal_active'] is True

    def test_settings_change_refreshes_result(self):
        self.client.post('/match', json={'name': 'BT-1', 'deposit': 1000})
        self.client.put('/settings/filters/exact_amount_match', json={'enabled': False})

        data = self.client.get('/match').get_json()
        assert data['status'] == 'ready'
        assert [invoice['name'] for invoice in data['invoices']] == ['SINV-1']
