"""
Analysis Result Store Tests

Run with:
    pytest tests/test_result_store.py -v
"""

from unittest.mock import MagicMock

import pytest
from azure.cosmos.exceptions import CosmosResourceNotFoundError

from services.result_store import AnalysisResultStore, result_id


@pytest.fixture
def container():
    return MagicMock()


@pytest.fixture
def store(container):
    cosmos = MagicMock()
    cosmos.create_database_if_not_exists.return_value.create_container_if_not_exists.return_value = (
        container
    )
    clients = MagicMock()
    clients.get_cosmos_client.return_value = cosmos
    return AnalysisResultStore(clients=clients, database_name="test-db")


class TestResultId:

    def test_id_fields(self):
        assert result_id({"analysis_id": "csv_1"}) == "csv_1"
        assert result_id({"search_id": "search_1"}) == "search_1"
        assert result_id({"document_id": "pdf_1"}) == "pdf_1"
        assert result_id({"status": "success"}) is None


class TestSaveResult:

    async def test_upserts_document(self, store, container):
        saved = await store.save_result("analyze_csv", {"analysis_id": "csv_1", "status": "success"})

        assert saved is True
        document = container.upsert_item.call_args.kwargs["body"]
        assert document["id"] == "csv_1"
        assert document["tool"] == "analyze_csv"
        assert "stored_at" in document

    async def test_skips_results_without_id(self, store, container):
        assert await store.save_result("analyze_csv", {"status": "success"}) is False
        container.upsert_item.assert_not_called()

    async def test_skips_unknown_tool(self, store, container):
        assert await store.save_result("calculator", {"analysis_id": "x"}) is False

    async def test_disabled_by_environment(self, monkeypatch, container):
        monkeypatch.setenv("PERSIST_ANALYSIS_RESULTS", "false")
        store = AnalysisResultStore(clients=MagicMock())
        assert await store.save_result("analyze_csv", {"analysis_id": "csv_1"}) is False

    async def test_write_failure_is_reported(self, store, container):
        container.upsert_item.side_effect = RuntimeError("throttled")
        assert await store.save_result("analyze_csv", {"analysis_id": "csv_1"}) is False

    async def test_no_cosmos_client(self):
        clients = MagicMock()
        clients.get_cosmos_client.return_value = None
        store = AnalysisResultStore(clients=clients)
        assert await store.save_result("analyze_csv", {"analysis_id": "csv_1"}) is False


class TestGetResult:

    async def test_reads_by_partition(self, store, container):
        container.read_item.return_value = {"id": "csv_1"}

        assert await store.get_result("analyze_csv", "csv_1") == {"id": "csv_1"}
        container.read_item.assert_called_once_with(item="csv_1", partition_key="analyze_csv")

    async def test_missing_item(self, store, container):
        container.read_item.side_effect = CosmosResourceNotFoundError(message="gone")
        assert await store.get_result("analyze_csv", "csv_1") is None
