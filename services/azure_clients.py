# Copyright (c) Microsoft. All rights reserved.
"""
Shared Azure Service Clients

A process-wide manager that builds Azure SDK clients from secrets stored in
Key Vault. Each client is constructed on first access; a client whose
secrets are missing (or whose construction fails) stays None so callers can
degrade gracefully.

Secret names and their environment fallbacks:
- search-service-endpoint / search-service-key  -> SEARCH_SERVICE_ENDPOINT / SEARCH_SERVICE_KEY
- openai-endpoint / openai-key                   -> OPENAI_ENDPOINT / OPENAI_KEY
- cosmos-endpoint / cosmos-key                   -> COSMOS_ENDPOINT / COSMOS_KEY
- storage-connection-string                      -> STORAGE_CONNECTION_STRING
- document-intelligence-endpoint / -key          -> DOCUMENT_INTELLIGENCE_ENDPOINT / _KEY
"""

import logging
import os
from typing import Any

from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from azure.cosmos import CosmosClient
from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient
from azure.search.documents import SearchClient
from azure.storage.blob import BlobServiceClient
from openai import AzureOpenAI

logger = logging.getLogger(__name__)

# Older deployments configured some services under these names
LEGACY_ENV_ALIASES = {
    "document-intelligence-endpoint": [
        "AZURE_FORM_RECOGNIZER_ENDPOINT",
        "DOCUMENT_INTELLIGENCE_ENDPOINT",
    ],
    "document-intelligence-key": [
        "AZURE_FORM_RECOGNIZER_KEY",
        "DOCUMENT_INTELLIGENCE_KEY",
    ],
    "storage-connection-string": ["AZURE_STORAGE_CONNECTION_STRING"],
}

_UNSET = object()


class AzureClientsManager:
    """
    Lazily constructs and caches the Azure SDK clients used by the tools.

    Use get_instance() rather than the constructor so all tools share one
    set of connections per worker process.
    """

    _instance: "AzureClientsManager | None" = None

    def __init__(
        self,
        key_vault_url: str | None = None,
        credential: Any | None = None,
    ):
        """
        Initialize the manager.

        Args:
            key_vault_url: Key Vault URL. Defaults to KEY_VAULT_URL env var.
            credential: Azure credential for Key Vault. Defaults to DefaultAzureCredential.
        """
        self.key_vault_url = key_vault_url or os.environ.get("KEY_VAULT_URL")
        self.search_index_name = os.environ.get("SEARCH_INDEX_NAME", "documents-index")
        self.openai_api_version = os.environ.get(
            "AZURE_OPENAI_API_VERSION", "2024-02-01"
        )
        self._credential = credential
        self._key_vault_client: SecretClient | None = None
        self._clients: dict[str, Any] = {}
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "AzureClientsManager":
        """Get or create the shared manager."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the shared manager so the next get_instance() rebuilds it."""
        cls._instance = None

    def initialize(self) -> None:
        """Create the Key Vault client once. Safe to call repeatedly."""
        if self._initialized:
            return

        if self.key_vault_url:
            try:
                credential = self._credential or DefaultAzureCredential()
                self._key_vault_client = SecretClient(
                    vault_url=self.key_vault_url, credential=credential
                )
                logger.info("Key Vault client initialized successfully")
            except Exception as e:
                logger.warning(f"Could not initialize Key Vault client: {e}")
        else:
            logger.info("KEY_VAULT_URL not set, reading service secrets from environment")

        self._initialized = True

    # -------------------------------------------------------------------------
    # Secrets
    # -------------------------------------------------------------------------

    def get_secret(self, secret_name: str) -> str | None:
        """
        Resolve a secret from Key Vault, falling back to the environment.

        Args:
            secret_name: Key Vault secret name (e.g., "openai-endpoint").

        Returns:
            The secret value, or None when it is not configured anywhere.
        """
        self.initialize()

        if self._key_vault_client is not None:
            try:
                secret = self._key_vault_client.get_secret(secret_name)
                if secret.value:
                    return secret.value
            except Exception as e:
                logger.warning(f"Could not retrieve secret {secret_name}: {e}")

        env_names = [secret_name.upper().replace("-", "_")]
        env_names.extend(LEGACY_ENV_ALIASES.get(secret_name, []))
        for env_name in env_names:
            value = os.environ.get(env_name)
            if value:
                return value
        return None

    # -------------------------------------------------------------------------
    # Client construction
    # -------------------------------------------------------------------------

    def _get_or_build(self, name: str, factory) -> Any:
        cached = self._clients.get(name, _UNSET)
        if cached is not _UNSET:
            return cached

        client = None
        try:
            client = factory()
            if client is not None:
                logger.info(f"{name} client initialized")
            else:
                logger.warning(f"{name} client not configured, secrets missing")
        except Exception as e:
            logger.warning(f"Could not initialize {name} client: {e}")
            client = None

        self._clients[name] = client
        return client

    def _build_search_client(self) -> SearchClient | None:
        endpoint = self.get_secret("search-service-endpoint")
        key = self.get_secret("search-service-key")
        if not (endpoint and key):
            return None
        return SearchClient(
            endpoint=endpoint,
            index_name=self.search_index_name,
            credential=AzureKeyCredential(key),
        )

    def _build_openai_client(self) -> AzureOpenAI | None:
        endpoint = self.get_secret("openai-endpoint")
        key = self.get_secret("openai-key")
        if not (endpoint and key):
            return None
        return AzureOpenAI(
            azure_endpoint=endpoint,
            api_key=key,
            api_version=self.openai_api_version,
        )

    def _build_cosmos_client(self) -> CosmosClient | None:
        endpoint = self.get_secret("cosmos-endpoint")
        key = self.get_secret("cosmos-key")
        if not (endpoint and key):
            return None
        return CosmosClient(endpoint, credential=key)

    def _build_blob_client(self) -> BlobServiceClient | None:
        connection_string = self.get_secret("storage-connection-string")
        if not connection_string:
            return None
        return BlobServiceClient.from_connection_string(connection_string)

    def _build_document_intelligence_client(self) -> DocumentIntelligenceClient | None:
        endpoint = self.get_secret("document-intelligence-endpoint")
        key = self.get_secret("document-intelligence-key")
        if not (endpoint and key):
            return None
        return DocumentIntelligenceClient(
            endpoint=endpoint, credential=AzureKeyCredential(key)
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_key_vault_client(self) -> SecretClient | None:
        self.initialize()
        return self._key_vault_client

    def get_search_client(self) -> SearchClient | None:
        return self._get_or_build("Azure AI Search", self._build_search_client)

    def get_openai_client(self) -> AzureOpenAI | None:
        return self._get_or_build("Azure OpenAI", self._build_openai_client)

    def get_cosmos_client(self) -> CosmosClient | None:
        return self._get_or_build("Cosmos DB", self._build_cosmos_client)

    def get_blob_service_client(self) -> BlobServiceClient | None:
        return self._get_or_build("Blob Storage", self._build_blob_client)

    def get_document_intelligence_client(self) -> DocumentIntelligenceClient | None:
        return self._get_or_build(
            "Document Intelligence", self._build_document_intelligence_client
        )

    def health_check(self) -> dict[str, bool]:
        """Report which clients are available."""
        return {
            "keyVault": self.get_key_vault_client() is not None,
            "search": self.get_search_client() is not None,
            "openAI": self.get_openai_client() is not None,
            "cosmos": self.get_cosmos_client() is not None,
            "blobStorage": self.get_blob_service_client() is not None,
            "documentIntelligence": self.get_document_intelligence_client() is not None,
        }
