"""HTTP client for the transaction store that owns records, budgets and savings groups"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from finsight.config import settings
from finsight.domain.exceptions import TransactionSourceError
from finsight.domain.models import (
    Budget,
    Category,
    Currency,
    Location,
    TransactionRecord,
    TransactionType,
)
from finsight.infrastructure.observability.metrics import source_fetch_failures_counter
from finsight.utils.date_utils import parse_timestamp


def parse_transaction(txn: Dict[str, Any]) -> TransactionRecord:
    """Build a record from the store's JSON; unknown enum values raise ValueError"""
    location = txn.get("location")
    return TransactionRecord(
        transaction_id=str(txn["transaction_id"]),
        amount=abs(float(txn["amount"])),
        type=TransactionType(txn["type"]),
        category=Category(txn["category"]),
        date=parse_timestamp(txn["date"]),
        description=txn.get("description") or "",
        location=Location(
            name=location["name"],
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
        )
        if location
        else None,
        merchant=txn.get("merchant"),
        currency=Currency(txn.get("currency", Currency.HTG.value)),
    )


def parse_budget(item: Dict[str, Any]) -> Budget:
    return Budget(
        id=str(item["id"]),
        name=item["name"],
        category=Category(item["category"]),
        amount=float(item["amount"]),
        spent=float(item["spent"]),
        start_date=parse_timestamp(item["start_date"]),
        end_date=parse_timestamp(item["end_date"]),
    )


class TransactionSourceClient:
    """Client for the transaction store API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.transaction_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _get(self, endpoint: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET a JSON document from the store.

        Raises:
            TransactionSourceError: On timeout, HTTP errors or network failure
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.base_url}{path}", params=params)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as e:
                source_fetch_failures_counter.labels(endpoint=endpoint).inc()
                raise TransactionSourceError(f"Transaction store timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                source_fetch_failures_counter.labels(endpoint=endpoint).inc()
                raise TransactionSourceError(f"Transaction store error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                source_fetch_failures_counter.labels(endpoint=endpoint).inc()
                raise TransactionSourceError(f"Transaction store unreachable: {e}") from e
            except ValueError as e:
                source_fetch_failures_counter.labels(endpoint=endpoint).inc()
                raise TransactionSourceError(f"Invalid JSON from transaction store: {e}") from e

    async def get_transactions(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        type: TransactionType | None = None,
    ) -> List[TransactionRecord]:
        """
        Fetch a user's transactions dated within [start, end].

        Raises:
            TransactionSourceError: On transport errors or malformed records
        """
        params = {"start": start.isoformat(), "end": end.isoformat()}
        if type is not None:
            params["type"] = type.value
        data = await self._get("transactions", f"/users/{user_id}/transactions", params)
        try:
            return [parse_transaction(txn) for txn in data.get("transactions", [])]
        except (KeyError, ValueError, TypeError) as e:
            source_fetch_failures_counter.labels(endpoint="transactions").inc()
            raise TransactionSourceError(f"Invalid transaction data from store: {e}") from e

    async def get_active_budgets(self, user_id: str) -> List[Budget]:
        data = await self._get("budgets", f"/users/{user_id}/budgets", {"active": "true"})
        try:
            return [parse_budget(item) for item in data.get("budgets", [])]
        except (KeyError, ValueError, TypeError) as e:
            source_fetch_failures_counter.labels(endpoint="budgets").inc()
            raise TransactionSourceError(f"Invalid budget data from store: {e}") from e

    async def get_savings_group_count(self, user_id: str) -> int:
        data = await self._get("savings_groups", f"/users/{user_id}/savings-groups")
        try:
            return len(data["savings_groups"])
        except (KeyError, TypeError) as e:
            source_fetch_failures_counter.labels(endpoint="savings_groups").inc()
            raise TransactionSourceError(f"Invalid savings group data from store: {e}") from e
