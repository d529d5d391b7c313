# cart_service/services/order_client.py
from typing import Any

import requests
from requests import RequestException

from cart_service.domain.errors import ExternalServiceError
from cart_service.utils.settings import GATEWAY_TIMEOUT_SECONDS, ORDER_SERVICE_URL
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "order-service"


class OrderClient:
    """
    Klient order-service. Bez retry: POST nie jest idempotentny,
    powtorka mogla by utworzyc drugie zamowienie.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or ORDER_SERVICE_URL).rstrip("/")
        self.timeout = timeout or GATEWAY_TIMEOUT_SECONDS

    def create_order(self, payload: dict[str, Any], acting_user_id: str | None = None) -> dict[str, Any]:
        url = f"{self.base_url}/orders"
        headers = {"X-User-Role": "USER"}
        if acting_user_id:
            headers["X-User-Id"] = str(acting_user_id)

        logger.info(f"OrderClient POST {url}")
        try:
            resp = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            order = resp.json()
        except RequestException as e:
            raise ExternalServiceError(SERVICE_NAME, f"order creation failed: {e}")
        except ValueError as e:
            raise ExternalServiceError(SERVICE_NAME, f"invalid order response: {e}")

        if not order.get("id"):
            raise ExternalServiceError(SERVICE_NAME, "order response without id")
        return order
