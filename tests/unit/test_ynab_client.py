import json

import httpx
import pytest

from amazon_ledger_sync.clients.ynab import (
    LedgerHTTPError,
    LedgerResponse,
    LedgerTimeoutError,
    LedgerTransportError,
    YnabClient,
)
from amazon_ledger_sync.config.settings import LedgerSettings

PAYLOAD = {
    "account_id": "acc-1",
    "date": "2025-09-17",
    "amount": -4990,
    "payee_name": "Amazon",
    "memo": "",
    "cleared": "cleared",
    "approved": False,
    "import_id": "AMZ:-4990:2025-09-17",
}


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(token="secret-token", account_id="acc-1", budget_id="budget-1")


def _client(settings, sync_config, handler) -> YnabClient:
    return YnabClient(settings, sync_config, transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestYnabClientRequests:

    def test_create_transactions_posts_batch(self, settings, sync_config):
        # Arrange
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"data": {
                "transactions": [{"id": "ynab-1", "import_id": "AMZ:-4990:2025-09-17"}],
                "duplicate_import_ids": [],
            }})

        # Act
        with _client(settings, sync_config, handler) as client:
            response = client.create_transactions([PAYLOAD])

        # Assert
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.ynab.com/v1/budgets/budget-1/transactions"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert json.loads(request.content) == {"transactions": [PAYLOAD]}
        assert response.created_by_import_id == {"AMZ:-4990:2025-09-17": "ynab-1"}

    def test_duplicates_are_reported(self, settings, sync_config):
        def handler(request):
            return httpx.Response(201, json={"data": {
                "transactions": [],
                "duplicate_import_ids": ["AMZ:-4990:2025-09-17"],
            }})

        with _client(settings, sync_config, handler) as client:
            response = client.create_transactions([PAYLOAD])

        assert response.duplicate_import_ids == ["AMZ:-4990:2025-09-17"]
        assert response.created_by_import_id == {}

    def test_non_json_success_reads_as_empty(self, settings, sync_config):
        def handler(request):
            return httpx.Response(200, text="<html>ok</html>")

        with _client(settings, sync_config, handler) as client:
            response = client.create_transactions([PAYLOAD])

        assert response == LedgerResponse()


@pytest.mark.unit
class TestYnabClientErrors:

    def test_error_status_raises(self, settings, sync_config):
        # Arrange
        def handler(request):
            return httpx.Response(400, json={"error": {"id": "400", "detail": "invalid account"}})

        # Act
        with _client(settings, sync_config, handler) as client:
            with pytest.raises(LedgerHTTPError) as exc_info:
                client.create_transactions([PAYLOAD])

        # Assert
        assert exc_info.value.status_code == 400
        assert "invalid account" in str(exc_info.value)

    def test_timeout_raises(self, settings, sync_config):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with _client(settings, sync_config, handler) as client:
            with pytest.raises(LedgerTimeoutError, match="did not answer"):
                client.create_transactions([PAYLOAD])

    @pytest.mark.parametrize("error", [httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError])
    def test_connection_failure_raises(self, settings, sync_config, error):
        def handler(request):
            raise error("connection lost", request=request)

        with _client(settings, sync_config, handler) as client:
            with pytest.raises(LedgerTransportError, match="Could not reach the ledger"):
                client.create_transactions([PAYLOAD])


@pytest.mark.unit
class TestLedgerResponseParsing:

    @pytest.mark.parametrize("body", [None, [], {"data": None}, {"data": {}}, {"error": "x"}])
    def test_missing_parts_read_as_empty(self, body):
        assert LedgerResponse.from_json(body) == LedgerResponse()

    def test_transactions_without_id_are_ignored(self):
        response = LedgerResponse.from_json({"data": {"transactions": [
            {"import_id": "AMZ:1:2025-01-01"},
            {"id": 7, "import_id": "AMZ:2:2025-01-01"},
            {"id": "ynab-3"},
        ]}})

        assert response.created_by_import_id == {"AMZ:2:2025-01-01": "7"}
        assert len(response.transactions) == 2
