"""
Unit tests for the JSON settings store.
"""

import json

from bankrec_matching.config.settings_store import (
    MATCH_FILTERS_KEY, ROUND_OFF_KEY, SORT_FIELD_KEY, SORT_ORDER_KEY, SettingsStore
)
from bankrec_matching.models import (
    DEFAULT_FILTERS, GROUP_BY_CUSTOMER, SALES_INVOICE, MatchConfiguration,
    SortField, SortOrder
)


class TestSettingsStore:
    """Test cases for SettingsStore."""

    def make_store(self, tmp_path):
        self.settings_file = tmp_path / "nested" / "settings.json"
        return SettingsStore(str(self.settings_file))

    def test_missing_file_gives_defaults(self, tmp_path):
        store = self.make_store(tmp_path)
        assert store.load_configuration() == MatchConfiguration()
        assert store.get("anything", "fallback") == "fallback"

    def test_save_uses_storage_keys(self, tmp_path):
        store = self.make_store(tmp_path)
        store.save_configuration(MatchConfiguration(
            enabled_filters={SALES_INVOICE, GROUP_BY_CUSTOMER},
            sort_field=SortField.CUSTOMER_NAME,
            sort_order=SortOrder.DESC,
            round_off_tolerance=50
        ))

        data = json.loads(self.settings_file.read_text())
        assert data[MATCH_FILTERS_KEY] == sorted([SALES_INVOICE, GROUP_BY_CUSTOMER])
        assert data[SORT_FIELD_KEY] == "customer_name"
        assert data[SORT_ORDER_KEY] == "desc"
        assert data[ROUND_OFF_KEY] == 50

    def test_round_trip(self, tmp_path):
        store = self.make_store(tmp_path)
        config = MatchConfiguration(
            enabled_filters={SALES_INVOICE},
            sort_field=SortField.GRAND_TOTAL,
            sort_order=SortOrder.DESC,
            round_off_tolerance=5
        )
        store.save_configuration(config)
        assert SettingsStore(str(self.settings_file)).load_configuration() == config

    def test_invalid_values_fall_back_per_key(self, tmp_path):
        store = self.make_store(tmp_path)
        self.settings_file.write_text(json.dumps({
            MATCH_FILTERS_KEY: [SALES_INVOICE, "retired_filter"],
            SORT_FIELD_KEY: "amount",
            SORT_ORDER_KEY: "desc",
            ROUND_OFF_KEY: -1
        }))

        config = store.load_configuration()
        assert config.enabled_filters == frozenset({SALES_INVOICE})
        assert config.sort_field == SortField.OUTSTANDING_AMOUNT
        assert config.sort_order == SortOrder.DESC
        assert config.round_off_tolerance == 100

    def test_corrupt_file_gives_defaults(self, tmp_path):
        store = self.make_store(tmp_path)
        self.settings_file.write_text("{not json")
        assert store.load_configuration() == MatchConfiguration()

    def test_non_object_file_gives_defaults(self, tmp_path):
        store = self.make_store(tmp_path)
        self.settings_file.write_text("[1, 2, 3]")
        assert store.load_configuration().enabled_filters == DEFAULT_FILTERS

    def test_set_and_get_keep_other_keys(self, tmp_path):
        store = self.make_store(tmp_path)
        store.set("other-app-key", {"a": 1})
        store.save_configuration(MatchConfiguration())

        assert store.get("other-app-key") == {"a": 1}
        assert store.get(ROUND_OFF_KEY) == 100
