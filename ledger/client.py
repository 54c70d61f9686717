"""Async client for the ledger API and the per-user state it keeps in sync."""
import asyncio
from typing import Any

import httpx

from ledger.core.logging import app_logger

API_PREFIX = "/api/transactions"
EMPTY_SUMMARY = {"balance": 0.0, "income": 0.0, "expense": 0.0}


class LedgerClientError(Exception):
    """Non-success response or transport failure talking to the API."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class LedgerClient:
    """Thin wrapper over the /api/transactions endpoints."""

    def __init__(
        self,
        base_url: str,
        session_token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: API root, e.g. ``https://ledger.example.com``
            session_token: Identity provider token sent as a bearer header
            timeout_seconds: Timeout applied to every request
            transport: Optional custom transport (e.g. ASGITransport in tests)
        """
        headers = {}
        if session_token:
            headers["Authorization"] = f"Bearer {session_token}"
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._http.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.TimeoutException as e:
            raise LedgerClientError("Request timed out") from e
        except httpx.RequestError as e:
            raise LedgerClientError(f"Failed to connect to ledger API: {str(e)}") from e

        if response.is_error:
            try:
                message = response.json().get("error", response.reason_phrase)
            except ValueError:
                message = response.reason_phrase
            raise LedgerClientError(message, status_code=response.status_code)

        return response.json()

    async def list_transactions(self, user_id: str) -> list[dict]:
        data = await self._request("GET", f"/{user_id}")
        return data if isinstance(data, list) else []

    async def get_summary(self, user_id: str) -> dict:
        data = await self._request("GET", f"/summary/{user_id}")
        return {key: float(data.get(key) or 0) for key in EMPTY_SUMMARY}

    async def create_transaction(
        self, user_id: str, title: str, amount: float, category: str
    ) -> dict:
        return await self._request(
            "POST",
            "",
            json={
                "user_id": user_id,
                "title": title,
                "amount": amount,
                "category": category,
            },
        )

    async def delete_transaction(self, transaction_id: int) -> dict:
        return await self._request("DELETE", f"/{transaction_id}")


class TransactionsFeed:
    """
    Transaction list and summary for one user, refreshed from the API.

    State mirrors what a screen renders: ``transactions``, ``summary``,
    ``is_loading`` and ``error``. After ``close()`` no request result is
    applied to the state any more.
    """

    def __init__(self, client: LedgerClient, user_id: str | None):
        self.client = client
        self.user_id = user_id
        self.transactions: list[dict] = []
        self.summary: dict = dict(EMPTY_SUMMARY)
        self.is_loading = False
        self.error: Exception | None = None
        self._closed = False
        self._pending: set[asyncio.Task] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _record_error(self, exc: BaseException) -> None:
        app_logger.error(f"Ledger request failed for user {self.user_id}: {exc}")
        self.error = exc

    async def load_data(self) -> None:
        """Fetch the transaction list and summary concurrently."""
        if not self.user_id or self._closed:
            return

        self.is_loading = True
        self.error = None
        try:
            transactions, summary = await asyncio.gather(
                self._track(self.client.list_transactions(self.user_id)),
                self._track(self.client.get_summary(self.user_id)),
                return_exceptions=True,
            )
            if self._closed:
                return

            if isinstance(transactions, BaseException):
                self._record_error(transactions)
            else:
                self.transactions = transactions

            if isinstance(summary, BaseException):
                self._record_error(summary)
            else:
                self.summary = summary
        finally:
            if not self._closed:
                self.is_loading = False

    async def delete_transaction(self, transaction_id: int) -> bool:
        """
        Delete a transaction, then reload list and summary.

        Returns:
            True when the delete succeeded; on failure ``error`` is set and the
            current list and summary are left untouched.
        """
        if self._closed:
            return False

        try:
            await self._track(self.client.delete_transaction(transaction_id))
        except LedgerClientError as e:
            if not self._closed:
                self._record_error(e)
            return False

        # Refresh from the server instead of removing the row locally
        await self.load_data()
        return True

    def close(self) -> None:
        """Cancel in-flight requests and stop applying results."""
        self._closed = True
        for task in list(self._pending):
            task.cancel()
