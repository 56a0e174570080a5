from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from amazon_ledger_sync.config.settings import LedgerSettings, SyncConfig
from amazon_ledger_sync.logging_setup import get_logger

logger = get_logger(__name__)


class LedgerError(Exception):
    """Base class for ledger API failures."""
    pass


class LedgerHTTPError(LedgerError):
    """Raised when the ledger answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Ledger returned HTTP {status_code}: {body[:200]}")


class LedgerTimeoutError(LedgerError):
    """Raised when the ledger does not answer within the request timeout."""
    pass


class LedgerTransportError(LedgerError):
    """Raised when the connection to the ledger fails."""
    pass


@dataclass
class CreatedTransaction:
    id: str
    import_id: Optional[str]


@dataclass
class LedgerResponse:
    """The parts of a create-transactions response the sync relies on"""
    transactions: List[CreatedTransaction] = field(default_factory=list)
    duplicate_import_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, body: Any) -> "LedgerResponse":
        """
        Read `{data: {transactions: [{id, import_id}], duplicate_import_ids}}`.

        Missing parts read as empty, so every submitted record ends up
        unconfirmed rather than failing the batch.
        """
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            return cls()

        created = [
            CreatedTransaction(id=str(t["id"]), import_id=t.get("import_id"))
            for t in data.get("transactions") or []
            if isinstance(t, dict) and t.get("id") is not None
        ]
        duplicates = [str(i) for i in data.get("duplicate_import_ids") or []]
        return cls(transactions=created, duplicate_import_ids=duplicates)

    @property
    def created_by_import_id(self) -> Dict[str, str]:
        return {t.import_id: t.id for t in self.transactions if t.import_id}


class YnabClient:
    """
    Minimal client for the YNAB API.

    Usage:
        with YnabClient(LedgerSettings.from_env()) as client:
            response = client.create_transactions(payloads)
    """

    def __init__(
        self,
        settings: LedgerSettings,
        config: Optional[SyncConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings
        self.config = config or SyncConfig()
        self._client = httpx.Client(
            base_url=self.config.ledger_base_url,
            headers={
                "Authorization": f"Bearer {settings.token}",
                "Content-Type": "application/json",
            },
            timeout=self.config.request_timeout_seconds,
            transport=transport,
        )

    def create_transactions(self, transactions: List[Dict[str, Any]]) -> LedgerResponse:
        """
        Create a batch of transactions in one request.

        Args:
            transactions: Ledger payloads, each carrying an import_id

        Returns:
            Created transactions and duplicate import ids

        Raises:
            LedgerTimeoutError: If the request timed out
            LedgerTransportError: If the connection failed
            LedgerHTTPError: If the response status is not 2xx
        """
        url = f"/budgets/{self.settings.budget_id}/transactions"
        logger.debug("POST %s with %d transactions", url, len(transactions))

        try:
            response = self._client.post(url, json={"transactions": transactions})
        except httpx.TimeoutException as e:
            raise LedgerTimeoutError(
                f"Ledger did not answer within {self.config.request_timeout_seconds}s"
            ) from e
        except httpx.RequestError as e:
            raise LedgerTransportError(f"Could not reach the ledger: {e}") from e

        if not response.is_success:
            raise LedgerHTTPError(response.status_code, response.text)

        try:
            body = response.json()
        except ValueError:
            logger.warning("Ledger answered HTTP %d without a JSON body", response.status_code)
            body = None
        return LedgerResponse.from_json(body)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "YnabClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
