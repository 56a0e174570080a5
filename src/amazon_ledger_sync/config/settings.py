import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

# Package defaults (bundled with code)
PACKAGE_CONFIG_DIR = Path(__file__).parent / "defaults"

# User configs (in project root, gitignored)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
USER_CONFIG_DIR = PROJECT_ROOT / "config"


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""
    pass


class ConfigLoader:
    """Load configuration with user overrides"""

    @staticmethod
    def load_config(config_name: str) -> Dict[str, Any]:
        """
        Load config with fallback: user config -> default config

        Args:
            config_name: Name of the config file (e.g., 'sync.json')

        Raises:
            FileNotFoundError: If no config file was found

        Returns:
            Parsed JSON configuration
        """
        user_config_path = USER_CONFIG_DIR / config_name
        if user_config_path.exists():
            with open(user_config_path, encoding="utf-8") as f:
                return json.load(f)

        default_config_path = PACKAGE_CONFIG_DIR / config_name
        if default_config_path.exists():
            with open(default_config_path, encoding="utf-8") as f:
                return json.load(f)

        raise FileNotFoundError(
            f"Config file '{config_name}' not found in:\n"
            f" - {user_config_path}\n"
            f" - {default_config_path}"
        )

    @staticmethod
    def load_parsers_config():
        """Load parsers registry configuration"""
        return ConfigLoader.load_config('parsers.json')

    @staticmethod
    def load_sync_config():
        """Load reconciliation and ledger sync settings"""
        return ConfigLoader.load_config('sync.json')


@dataclass(frozen=True)
class SyncConfig:
    """Tunables shared by the normalizer, the merge and the ledger sync"""
    retailer: str = "amazon.de"
    import_id_prefix: str = "AMZ"
    max_import_id_length: int = 36
    memo_max_length: int = 200
    description_excerpt_length: int = 200
    loyalty_instruments: Tuple[str, ...] = ("Santander-Punkte", "Amazon Punkte Punkte")
    login_sentinels: Tuple[str, ...] = ("Anmelden", "Amazon Anmelden")
    default_payee: str = "unknown-merchant"
    ledger_base_url: str = "https://api.ynab.com/v1"
    request_timeout_seconds: float = 30.0
    summary_sample_limit: int = 5

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "SyncConfig":
        """
        Build settings from a config dict.

        Args:
            config: Optional config dict. If None, loads 'sync.json' from
                ConfigLoader. Unknown keys are ignored, missing keys keep
                their defaults.
        """
        if config is None:
            config = ConfigLoader.load_sync_config()

        values: Dict[str, Any] = {}
        for name in cls.__dataclass_fields__:
            if name not in config:
                continue
            value = config[name]
            if name in ("loyalty_instruments", "login_sentinels"):
                value = tuple(value)
            values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class LedgerSettings:
    """Credentials and target of the budgeting ledger"""
    token: str
    account_id: str
    budget_id: str = "last-used"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "LedgerSettings":
        """
        Read YNAB_TOKEN, YNAB_ACCOUNT_ID and YNAB_BUDGET_ID.

        Raises:
            ConfigurationError: If the token or the account id is missing
        """
        env = os.environ if environ is None else environ
        token = (env.get("YNAB_TOKEN") or "").strip()
        account_id = (env.get("YNAB_ACCOUNT_ID") or "").strip()
        missing = [
            name for name, value in (("YNAB_TOKEN", token), ("YNAB_ACCOUNT_ID", account_id))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing ledger settings: {', '.join(missing)}. "
                f"Set them in the environment or in a .env file."
            )
        budget_id = (env.get("YNAB_BUDGET_ID") or "").strip() or "last-used"
        return cls(token=token, account_id=account_id, budget_id=budget_id)
