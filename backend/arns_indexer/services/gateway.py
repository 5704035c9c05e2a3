from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from arns_indexer.services.errors import TransientNetworkError

TRANSACTION_TAGS_QUERY = """
query GetTransactionTags($id: ID!) {
  transaction(id: $id) {
    tags {
      name
      value
    }
  }
}
"""


class GatewayClient:
    """Builds gateway URLs and performs the raw HTTP calls against an Arweave gateway."""

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings) -> "GatewayClient":
        return cls(client, settings.gateway_base_url)

    @property
    def graphql_url(self) -> str:
        return f"{self.base_url}/graphql"

    def raw_url(self, transaction_id: str) -> str:
        return f"{self.base_url}/raw/{transaction_id}"

    def content_url(self, transaction_id: str, manifest_path: Optional[str] = None) -> str:
        url = f"{self.base_url}/{transaction_id}"
        if manifest_path:
            url = f"{url}/{manifest_path}"
        return url

    async def query_transaction_tags(self, transaction_id: str) -> httpx.Response:
        return await self.client.post(
            self.graphql_url,
            json={"query": TRANSACTION_TAGS_QUERY, "variables": {"id": transaction_id}},
            headers={"Content-Type": "application/json"},
        )

    async def get(self, url: str) -> httpx.Response:
        return await self.client.get(url)

    async def fetch_raw(self, transaction_id: str, what: str = "content") -> httpx.Response:
        response = await self.get(self.raw_url(transaction_id))
        if not response.is_success:
            raise TransientNetworkError(
                f"Failed to fetch {what}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def fetch_manifest(self, transaction_id: str) -> Dict[str, Any]:
        response = await self.fetch_raw(transaction_id, what="manifest")
        return response.json()


def build_http_client(settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": f"arns-indexer/{settings.version}"},
    )
