"""Payment gateway client (Chapa) behind a small protocol."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol
from uuid import UUID

import httpx

from ..core.config import Settings
from ..core.exceptions import InternalServerError, PaymentGatewayUnavailableError
from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    """Definitive or provisional answer of a payment verification."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True)
class CheckoutRequest:
    """What the gateway needs to open a hosted checkout."""

    transaction_reference: str
    booking_id: UUID
    amount: int
    currency: str
    email: str
    first_name: str
    last_name: str
    title: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class CheckoutSession:
    checkout_url: str
    transaction_reference: str


@dataclass(frozen=True)
class PaymentVerification:
    """Verification result. amount is in minor units when the gateway reports one."""

    transaction_reference: str
    status: VerificationStatus
    amount: Optional[int] = None
    currency: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """Interface the payment service talks to."""

    async def initialize(self, checkout: CheckoutRequest) -> CheckoutSession:
        ...

    async def verify(self, transaction_reference: str) -> PaymentVerification:
        ...


def _to_major_units(amount: int) -> str:
    return f"{amount / 100:.2f}"


def _to_minor_units(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(round(float(value) * 100))
    except (TypeError, ValueError):
        return None


class ChapaGateway:
    """
    Chapa REST client over httpx.

    Network failures, timeouts and 5xx answers raise
    PaymentGatewayUnavailableError: the payment outcome is unknown and the
    caller must not treat it as a failed payment.
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str,
        return_url: str,
        timeout_seconds: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.return_url = return_url
        self.http = http or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=5.0),
        )
        self._headers = {"Authorization": f"Bearer {secret_key}"}

    @classmethod
    def from_settings(cls, settings: Settings, http: Optional[httpx.AsyncClient] = None) -> "ChapaGateway":
        return cls(
            secret_key=settings.chapa_secret_key,
            base_url=settings.chapa_base_url,
            return_url=settings.payment_return_url,
            timeout_seconds=settings.payment_gateway_timeout_seconds,
            http=http,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def initialize(self, checkout: CheckoutRequest) -> CheckoutSession:
        """
        Open a hosted checkout for a booking.

        Raises:
            PaymentGatewayUnavailableError: If the gateway cannot be reached
            InternalServerError: If the gateway refuses the request
        """
        payload: dict[str, Any] = {
            "tx_ref": checkout.transaction_reference,
            "amount": _to_major_units(checkout.amount),
            "currency": checkout.currency,
            "email": checkout.email,
            "first_name": checkout.first_name,
            "last_name": checkout.last_name,
            "return_url": (
                f"{self.return_url}?booking_id={checkout.booking_id}"
                f"&tx_ref={checkout.transaction_reference}"
            ),
        }
        if checkout.title or checkout.description:
            payload["customization"] = {
                key: value
                for key, value in (("title", checkout.title), ("description", checkout.description))
                if value
            }

        response = await self._request("initialize", "POST", "/transaction/initialize", json=payload)
        body = self._json(response)

        if response.status_code >= 400 or body.get("status") != "success":
            logger.error(
                "Chapa refused payment initialization",
                extra={
                    "transaction_reference": checkout.transaction_reference,
                    "status_code": response.status_code,
                    "gateway_message": body.get("message"),
                }
            )
            raise InternalServerError(detail="Failed to initialize payment")

        checkout_url = (body.get("data") or {}).get("checkout_url")
        if not checkout_url:
            logger.error(
                "Chapa initialization response is missing the checkout URL",
                extra={"transaction_reference": checkout.transaction_reference}
            )
            raise InternalServerError(detail="Invalid response from payment gateway")

        return CheckoutSession(
            checkout_url=checkout_url,
            transaction_reference=checkout.transaction_reference,
        )

    async def verify(self, transaction_reference: str) -> PaymentVerification:
        """
        Ask the gateway what happened to a transaction.

        A 4xx answer means the gateway does not know the transaction (yet);
        it is reported as pending, never as failed.

        Raises:
            PaymentGatewayUnavailableError: If the gateway cannot be reached
        """
        response = await self._request(
            "verify", "GET", f"/transaction/verify/{transaction_reference}"
        )
        body = self._json(response)

        if response.status_code >= 400:
            logger.warning(
                "Chapa did not recognise transaction",
                extra={
                    "transaction_reference": transaction_reference,
                    "status_code": response.status_code,
                    "gateway_message": body.get("message"),
                }
            )
            return PaymentVerification(
                transaction_reference=transaction_reference,
                status=VerificationStatus.PENDING,
                raw=body,
            )

        data = body.get("data") or {}
        gateway_status = str(data.get("status", "")).lower()
        if gateway_status == "success":
            status = VerificationStatus.SUCCESS
        elif gateway_status == "failed":
            status = VerificationStatus.FAILED
        else:
            status = VerificationStatus.PENDING

        return PaymentVerification(
            transaction_reference=transaction_reference,
            status=status,
            amount=_to_minor_units(data.get("amount")),
            currency=data.get("currency"),
            raw=body,
        )

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.http.request(method, path, headers=self._headers, **kwargs)
        except httpx.TimeoutException as e:
            metrics_collector.record_gateway_error(operation)
            logger.error("Chapa request timed out", extra={"operation": operation, "path": path})
            raise PaymentGatewayUnavailableError("The payment gateway timed out") from e
        except httpx.HTTPError as e:
            metrics_collector.record_gateway_error(operation)
            logger.error(
                "Chapa request failed",
                extra={"operation": operation, "path": path, "error": str(e)}
            )
            raise PaymentGatewayUnavailableError() from e

        if response.status_code >= 500:
            metrics_collector.record_gateway_error(operation)
            logger.error(
                "Chapa returned a server error",
                extra={"operation": operation, "path": path, "status_code": response.status_code}
            )
            raise PaymentGatewayUnavailableError()
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
