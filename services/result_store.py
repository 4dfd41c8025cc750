# Copyright (c) Microsoft. All rights reserved.
"""
Cosmos DB Storage for Analysis Results

Best-effort persistence of tool results in Azure Cosmos DB. Each tool writes
to its own container in a shared database, partitioned on the tool name.

Document shape:
- {"id": "<analysis id>", "tool": "analyze_csv", "stored_at": "...", ...result}
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.exceptions import CosmosResourceNotFoundError

from services.azure_clients import AzureClientsManager

# Tool name -> container name
RESULT_CONTAINERS = {
    "analyze_csv": "csv-analyses",
    "analyze_compliance": "compliance-analyses",
    "analyze_omnichannel_journey": "omnichannel-analyses",
    "search_knowledge": "knowledge-searches",
    "process_pdf": "pdf-analyses",
}

RESULT_ID_FIELDS = ("analysis_id", "search_id", "document_id")


def result_id(result: dict) -> str | None:
    """Return the identifier a tool result carries."""
    for id_field in RESULT_ID_FIELDS:
        if result.get(id_field):
            return result[id_field]
    return None


class AnalysisResultStore:
    """
    Stores tool results in Azure Cosmos DB.

    Writes never raise: a missing Cosmos client or a failed write is logged
    and reported through the return value.
    """

    def __init__(
        self,
        clients: AzureClientsManager | None = None,
        database_name: str | None = None,
    ):
        """
        Initialize the result store.

        Args:
            clients: Shared clients manager. Defaults to AzureClientsManager.get_instance().
            database_name: Database name. Defaults to COSMOS_DATABASE_NAME env var.
        """
        self.clients = clients or AzureClientsManager.get_instance()
        self.database_name = database_name or os.environ.get(
            "COSMOS_DATABASE_NAME", "utilities-analytics"
        )
        self.enabled = os.environ.get("PERSIST_ANALYSIS_RESULTS", "true").lower() != "false"
        self._containers: dict[str, Any] = {}

    def _get_container(self, tool_name: str):
        """Lazy initialization of the container client for a tool."""
        container_name = RESULT_CONTAINERS.get(tool_name)
        if container_name is None:
            return None

        if container_name not in self._containers:
            client = self.clients.get_cosmos_client()
            if client is None:
                return None
            database = client.create_database_if_not_exists(id=self.database_name)
            self._containers[container_name] = database.create_container_if_not_exists(
                id=container_name,
                partition_key=PartitionKey(path="/tool"),
            )
        return self._containers[container_name]

    async def save_result(self, tool_name: str, result: dict) -> bool:
        """
        Persist a successful tool result.

        Args:
            tool_name: Registered tool name.
            result: Tool result dict (must carry an analysis/search/document id).

        Returns:
            True if stored, False if skipped or failed.
        """
        if not self.enabled:
            return False

        item_id = result_id(result)
        if item_id is None:
            logging.info(f"Result from {tool_name} has no id, skipping storage")
            return False

        try:
            container = self._get_container(tool_name)
            if container is None:
                logging.info("Cosmos DB client not available, skipping storage")
                return False

            document = {
                **result,
                "id": item_id,
                "tool": tool_name,
                "stored_at": datetime.now(timezone.utc).isoformat(),
            }
            container.upsert_item(body=document)
            logging.info(f"Stored {tool_name} result {item_id} in Cosmos DB")
            return True
        except Exception as e:
            logging.warning(f"Could not store {tool_name} result in Cosmos DB: {e}")
            return False

    async def get_result(self, tool_name: str, item_id: str) -> dict | None:
        """
        Get a stored result by id.

        Returns:
            The stored document or None if not found or storage is unavailable.
        """
        container = self._get_container(tool_name)
        if container is None:
            return None
        try:
            return container.read_item(item=item_id, partition_key=tool_name)
        except CosmosResourceNotFoundError:
            return None
