import pytest

from amazon_ledger_sync.config.settings import ConfigurationError, LedgerSettings, SyncConfig


@pytest.mark.unit
class TestSyncConfig:

    def test_from_custom_config(self):
        """Test loading with injected config (no file I/O)"""
        # Arrange
        test_config = {
            "import_id_prefix": "AMZDE",
            "loyalty_instruments": ["Payback-Punkte"],
            "unknown_key": "ignored",
        }

        # Act
        config = SyncConfig.from_config(test_config)

        # Assert
        assert config.import_id_prefix == "AMZDE"
        assert config.loyalty_instruments == ("Payback-Punkte",)
        assert config.max_import_id_length == 36

    def test_packaged_defaults_match_code_defaults(self):
        assert SyncConfig.from_config() == SyncConfig()


@pytest.mark.unit
class TestLedgerSettings:

    def test_from_env(self):
        settings = LedgerSettings.from_env({"YNAB_TOKEN": " secret ", "YNAB_ACCOUNT_ID": "acc-1"})

        assert settings == LedgerSettings(token="secret", account_id="acc-1", budget_id="last-used")

    def test_budget_id_override(self):
        settings = LedgerSettings.from_env({
            "YNAB_TOKEN": "secret",
            "YNAB_ACCOUNT_ID": "acc-1",
            "YNAB_BUDGET_ID": "budget-1",
        })

        assert settings.budget_id == "budget-1"

    def test_missing_credentials(self):
        with pytest.raises(ConfigurationError, match="YNAB_TOKEN, YNAB_ACCOUNT_ID"):
            LedgerSettings.from_env({"YNAB_TOKEN": "  "})
