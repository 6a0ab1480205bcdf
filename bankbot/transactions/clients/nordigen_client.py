"""
GoCardless Bank Account Data (formerly Nordigen) transaction source.

Talks to the v2 REST API with httpx. Access tokens are requested with the
secret id/key pair and requested again once when the API answers 401.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
import structlog

from bankbot.transactions.clients.base import (
    APIAuthenticationError,
    APIConnectionError,
    APIRateLimitError,
    APIResponseError,
    APIValidationError,
    BaseTransactionSource,
)
from bankbot.transactions.config import RetryConfig
from bankbot.transactions.models import Balance, Transaction
from bankbot.transactions.retry import retry_with_backoff

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://bankaccountdata.gocardless.com/api/v2"
CLOSING_BOOKED = "closingBooked"


class NordigenTransactionSource(BaseTransactionSource):
    """Transaction source backed by the GoCardless Bank Account Data API."""

    def __init__(
        self,
        secret_id: str,
        secret_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        retry: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            secret_id: API secret id
            secret_key: API secret key
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            retry: Retry policy for transport errors
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.secret_id = secret_id
        self.secret_key = secret_key
        self.retry = retry or RetryConfig()
        self._access_token: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    def get_source_name(self) -> str:
        return "nordigen"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_transactions(self, account_id: str) -> List[Transaction]:
        data = await self._request("GET", f"/accounts/{account_id}/transactions/")
        try:
            booked = data["transactions"]["booked"]
            return [self._to_transaction(item) for item in booked]
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise APIValidationError(f"Malformed transactions response: {e}") from e

    async def _get_balance(self, account_id: str) -> Balance:
        data = await self._request("GET", f"/accounts/{account_id}/balances/")
        try:
            for balance in data["balances"]:
                if balance["balanceType"] == CLOSING_BOOKED:
                    amount = balance["balanceAmount"]
                    return Balance(
                        amount=Decimal(str(amount["amount"])),
                        currency=amount.get("currency") or None,
                    )
        except (KeyError, TypeError, InvalidOperation) as e:
            raise APIValidationError(f"Malformed balances response: {e}") from e
        raise APIValidationError(f"No {CLOSING_BOOKED} balance for account")

    async def create_end_user_agreement(self, institution_id: str) -> str:
        """Create an end user agreement and return its id."""
        data = await self._request(
            "POST", "/agreements/enduser/", json={"institution_id": institution_id}
        )
        return str(data["id"])

    async def create_requisition(
        self,
        institution_id: str,
        agreement_id: str,
        redirect: str = "http://localhost",
    ) -> str:
        """Create a requisition and return the bank authorisation link."""
        data = await self._request(
            "POST",
            "/requisitions/",
            json={
                "institution_id": institution_id,
                "agreement": agreement_id,
                "redirect": redirect,
            },
        )
        return str(data["link"])

    @staticmethod
    def _to_transaction(item: Dict[str, Any]) -> Transaction:
        labels = item.get("remittanceInformationUnstructuredArray") or []
        label = labels[0] if labels else item.get("remittanceInformationUnstructured") or "?"
        amount = item["transactionAmount"]
        return Transaction(
            internal_id=item["internalTransactionId"],
            stable_id=item.get("transactionId") or None,
            date=date.fromisoformat(item["bookingDate"]),
            amount=Decimal(str(amount["amount"])),
            label=label,
            currency=amount.get("currency") or None,
        )

    async def _new_token(self) -> None:
        response = await self._client.post(
            "/token/new/",
            json={"secret_id": self.secret_id, "secret_key": self.secret_key},
        )
        data = self._parse(response)
        try:
            self._access_token = data["access"]
        except KeyError as e:
            raise APIAuthenticationError("Token response without access token") from e
        logger.debug("nordigen.token_refreshed")

    async def _request(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        async def send() -> httpx.Response:
            if self._access_token is None:
                await self._new_token()
            response = await self._client.request(
                method, path, json=json, headers=self._auth_headers()
            )
            if response.status_code == 401:
                logger.info("nordigen.token_expired", path=path)
                self._access_token = None
                await self._new_token()
                response = await self._client.request(
                    method, path, json=json, headers=self._auth_headers()
                )
            return response

        try:
            response = await retry_with_backoff(
                send,
                self.retry,
                operation_name=f"{method} {path}",
                retry_on=(httpx.TransportError,),
            )
        except httpx.TransportError as e:
            raise APIConnectionError(f"{method} {path} failed: {e}") from e

        return self._parse(response)

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    @staticmethod
    def _parse(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise APIValidationError(
                f"Non-JSON response (HTTP {response.status_code})"
            ) from e

        if response.status_code < 400 and not (isinstance(data, dict) and "summary" in data):
            if not isinstance(data, dict):
                raise APIValidationError("Unexpected JSON response")
            return data

        summary = str(data.get("summary", "")) if isinstance(data, dict) else ""
        detail = str(data.get("detail", "")) if isinstance(data, dict) else ""
        summary = summary or f"HTTP {response.status_code}"

        if response.status_code == 429:
            raise APIRateLimitError(f"{summary}: {detail}" if detail else summary)
        if response.status_code in (401, 403):
            raise APIAuthenticationError(f"{summary}: {detail}" if detail else summary)
        raise APIResponseError(summary, detail, response.status_code)
