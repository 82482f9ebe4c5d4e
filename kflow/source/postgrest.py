"""RecordSource backed by a hosted Postgres REST API (PostgREST dialect).

Usage:
    source = PostgrestRecordSource(url="https://xyz.example.co", api_key="...")
    customers = await source.load_customers()
    await source.close()
"""

from typing import Any

import httpx

from kflow.exceptions import RecordSourceError
from kflow.observability.logging import get_logger
from kflow.source.base import RecordSource, Row

logger = get_logger(__name__)

CUSTOMER_COLUMNS = (
    "id",
    "company_name",
    "email",
    "telephone",
    "status",
    "customer_type",
    "created_at",
    "address",
    "town",
    "postal_code",
    "afm",
)

OFFER_COLUMNS = (
    "id",
    "customer_id",
    "created_at",
    "source",
    "amount",
    "offer_result",
    "result",
    "requirements",
    "customer_comments",
    "our_comments",
    "deleted_at",
)


class PostgrestRecordSource(RecordSource):
    """Queries the customers and offers tables over HTTP.

    Attributes:
        base_url: Project URL; requests go to {base_url}/rest/v1
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        schema_name: str = "public",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            url: Project base URL
            api_key: Key sent as both apikey header and bearer token
            schema_name: Database schema exposed by the API
            timeout: Request timeout in seconds
            transport: Optional transport override (tests)
        """
        self.base_url = url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
                "Accept-Profile": schema_name,
            },
        )

    async def __aenter__(self) -> "PostgrestRecordSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def load_customers(self) -> list[Row]:
        select = f"{','.join(CUSTOMER_COLUMNS)},offers({','.join(OFFER_COLUMNS)})"
        return await self._get(
            "/customers",
            {
                "select": select,
                "deleted_at": "is.null",
                "offers.deleted_at": "is.null",
                "order": "company_name.asc",
            },
        )

    async def list_offers(self, customer_id: str) -> list[Row]:
        return await self._get(
            "/offers",
            {
                "select": "*",
                "customer_id": f"eq.{customer_id}",
                "deleted_at": "is.null",
                "order": "created_at.desc",
            },
        )

    async def _get(self, path: str, params: dict[str, str]) -> list[Row]:
        """Run a GET query and return its rows."""
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("record_source_transport_error", path=path, error=str(exc))
            raise RecordSourceError(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            details: Any = None
            message = response.text
            try:
                details = response.json()
                if isinstance(details, dict):
                    message = details.get("message") or message
            except ValueError:
                pass
            raise RecordSourceError(
                message=message,
                status_code=response.status_code,
                details=details,
            )

        data = response.json()
        if not isinstance(data, list):
            raise RecordSourceError(
                f"Unexpected response shape from {path}",
                status_code=response.status_code,
                details=data,
            )
        return data
