import pytest

from amazon_ledger_sync.config.settings import ConfigurationError, SyncConfig
from amazon_ledger_sync.parsers.amazon_de import AmazonDeTransactionParser
from amazon_ledger_sync.parsers.factory import ParserRegistry

AMAZON_DE_CLASS = "amazon_ledger_sync.parsers.amazon_de.AmazonDeTransactionParser"


@pytest.mark.unit
class TestParserRegistryFromConfig:

    def test_packaged_config_covers_configured_retailer(self):
        registry = ParserRegistry.from_config()

        assert registry.retailers == ["amazon.de"]
        assert SyncConfig.from_config().retailer in registry.retailers

    def test_registries_are_independent(self):
        # Arrange
        empty = ParserRegistry()

        # Act
        loaded = ParserRegistry.from_config({"parsers": [{"retailer": "shop", "class": AMAZON_DE_CLASS}]})

        # Assert
        assert empty.retailers == []
        assert loaded.retailers == ["shop"]

    @pytest.mark.parametrize("entry, message", [
        ({"retailer": "amazon.de"}, "needs 'retailer' and 'class'"),
        ({"class": AMAZON_DE_CLASS}, "needs 'retailer' and 'class'"),
        ({"retailer": "x", "class": "nonexistent.module.FakeParser"}, "Cannot load parser class"),
        ({"retailer": "x", "class": "amazon_ledger_sync.parsers.amazon_de.Missing"}, "Cannot load parser class"),
        ({"retailer": "x", "class": "amazon_ledger_sync.config.settings.SyncConfig"}, "is not a TransactionParser"),
    ])
    def test_broken_entry_fails_at_startup(self, entry, message):
        with pytest.raises(ConfigurationError, match=message):
            ParserRegistry.from_config({"parsers": [entry]})

    def test_retailer_configured_twice(self):
        entry = {"retailer": "amazon.de", "class": AMAZON_DE_CLASS}

        with pytest.raises(ConfigurationError, match="configured twice"):
            ParserRegistry.from_config({"parsers": [entry, entry]})


@pytest.mark.unit
class TestParserRegistryCreate:

    def test_parser_gets_run_settings(self):
        # Arrange
        registry = ParserRegistry({"amazon.de": AmazonDeTransactionParser})
        config = SyncConfig(loyalty_instruments=("Payback-Punkte",))

        # Act
        parser = registry.create("amazon.de", config)

        # Assert
        assert isinstance(parser, AmazonDeTransactionParser)
        assert parser.config is config

    def test_unknown_retailer_lists_available(self):
        registry = ParserRegistry({"amazon.de": AmazonDeTransactionParser})

        with pytest.raises(ValueError, match="Available parsers: amazon.de"):
            registry.create("amazon.fr", SyncConfig())
