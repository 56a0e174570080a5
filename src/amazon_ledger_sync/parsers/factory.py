"""
Retailer normalizers, looked up by the retailer key of `sync.json`.

`parsers.json` maps each retailer key to a dotted class path:

    {"parsers": [{"retailer": "amazon.de",
                  "class": "amazon_ledger_sync.parsers.amazon_de.AmazonDeTransactionParser"}]}

Every entry is resolved when the registry is built, so a broken entry
fails at startup and not halfway through an import.
"""
import importlib
from typing import Any, Dict, List, Mapping, Optional, Type

from amazon_ledger_sync.config.settings import ConfigLoader, ConfigurationError, SyncConfig
from amazon_ledger_sync.parsers.base import TransactionParser


def _resolve(dotted_path: str) -> Type[TransactionParser]:
    module_path, _, class_name = dotted_path.rpartition(".")
    try:
        parser_class = getattr(importlib.import_module(module_path), class_name)
    except (ImportError, AttributeError, ValueError) as e:
        raise ConfigurationError(f"Cannot load parser class '{dotted_path}': {e}") from e

    if not isinstance(parser_class, type) or not issubclass(parser_class, TransactionParser):
        raise ConfigurationError(f"'{dotted_path}' is not a TransactionParser")
    return parser_class


class ParserRegistry:
    """
    Maps retailer keys to normalizer classes.

    Usage:
        registry = ParserRegistry.from_config()
        parser = registry.create(config.retailer, config)
    """

    def __init__(self, parsers: Optional[Mapping[str, Type[TransactionParser]]] = None):
        self._parsers: Dict[str, Type[TransactionParser]] = dict(parsers or {})

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "ParserRegistry":
        """
        Build the registry from a parsers config.

        Args:
            config: Optional config dict. If None, loads 'parsers.json'
                from ConfigLoader.

        Raises:
            ConfigurationError: If an entry is incomplete, names a retailer
                twice, or points at something that is not a parser class
        """
        if config is None:
            config = ConfigLoader.load_parsers_config()

        parsers: Dict[str, Type[TransactionParser]] = {}
        for entry in config.get("parsers", []):
            retailer, dotted_path = entry.get("retailer"), entry.get("class")
            if not retailer or not dotted_path:
                raise ConfigurationError(f"Parser entry needs 'retailer' and 'class': {entry}")
            if retailer in parsers:
                raise ConfigurationError(f"Retailer '{retailer}' is configured twice")
            parsers[retailer] = _resolve(dotted_path)
        return cls(parsers)

    @property
    def retailers(self) -> List[str]:
        return sorted(self._parsers)

    def create(self, retailer: str, config: SyncConfig) -> TransactionParser:
        """
        Instantiate the normalizer for `retailer` with the run's settings.

        Raises:
            ValueError: If no parser is configured for the retailer
        """
        parser_class = self._parsers.get(retailer)
        if parser_class is None:
            available = ", ".join(self.retailers) or "none"
            raise ValueError(f"No parser registered for '{retailer}'. Available parsers: {available}")
        return parser_class(config=config)
