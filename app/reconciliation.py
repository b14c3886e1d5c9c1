"""
FieldSync Reconciliation Client
Delivers completed work orders to the workflow-automation webhook that owns
the system of record. One POST per call; retrying is the caller's decision.
"""

from typing import Optional

import httpx
import structlog

from .errors import DeliveryError
from .models import Ack

logger = structlog.get_logger(__name__)

SECRET_HEADER = "X-Webhook-Secret"


class ReconciliationClient:
    """
    Thin webhook client.
    Any non-2xx response, timeout or transport failure becomes DeliveryError.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.webhook_url = webhook_url
        self.secret = secret
        self.timeout = timeout
        self._transport = transport

    async def deliver(self, payload: dict) -> Ack:
        """
        POST the payload once.

        Returns:
            Ack with the response status and parsed JSON body (empty if none)

        Raises:
            DeliveryError: carrying a human-readable cause
        """
        if not self.webhook_url:
            raise DeliveryError("reconciliation webhook not configured")

        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers[SECRET_HEADER] = self.secret

        work_order_id = payload.get("workOrderId")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise DeliveryError(f"webhook timed out after {self.timeout}s: {e!r}") from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"webhook unreachable: {e!r}") from e

        if not response.is_success:
            detail = response.text[:500]
            logger.warning("reconciliation_rejected",
                           work_order_id=work_order_id,
                           status=response.status_code,
                           detail=detail)
            raise DeliveryError(f"webhook returned {response.status_code}: {detail}")

        # Response body may be empty or not JSON; only the status matters
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"response": body}

        logger.info("reconciliation_delivered",
                    work_order_id=work_order_id,
                    status=response.status_code)
        return Ack(status_code=response.status_code, body=body)
