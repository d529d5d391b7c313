# cart_service/services/product_client.py
from decimal import Decimal

import requests
from requests import RequestException

from cart_service.domain.cart import ProductSnapshot
from cart_service.domain.errors import ExternalServiceError
from cart_service.domain.ports import ProductValidation, StockCheck
from cart_service.utils.retry import http_retry
from cart_service.utils.settings import GATEWAY_TIMEOUT_SECONDS, PRODUCT_SERVICE_URL
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "product-service"


def _pick(data: dict, *keys, default=None):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _decimal(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


class ProductClient:
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or GATEWAY_TIMEOUT_SECONDS

    @http_retry()
    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.info(f"ProductClient {method} {url}")

        resp = requests.request(method, url, timeout=self.timeout, **kwargs)
        if resp.status_code == 404:
            return resp
        resp.raise_for_status()
        return resp

    def get_product(self, product_id: str) -> ProductSnapshot | None:
        try:
            resp = self._request("GET", f"/products/{product_id}")
        except RequestException as e:
            raise ExternalServiceError(SERVICE_NAME, f"failed to fetch product {product_id}: {e}")

        if resp.status_code == 404:
            return None

        data = resp.json()
        category = data.get("category")
        if isinstance(category, dict):
            category = category.get("name")

        return ProductSnapshot(
            product_id=str(product_id),
            name=_pick(data, "name", default=""),
            price=_decimal(_pick(data, "effectivePrice", "effective_price", "price", default=0)),
            sku=_pick(data, "sku"),
            category=category,
            description=_pick(data, "description"),
            image_url=_pick(data, "primaryImageUrl", "image_url", "imageUrl"),
            preparation_time_minutes=_pick(data, "preparationTimeMinutes", "preparation_time_minutes"),
        )

    def check_stock(self, product_id: str, quantity: int) -> StockCheck:
        try:
            resp = self._request("GET", f"/products/{product_id}/stock", params={"quantity": quantity})
        except RequestException as e:
            raise ExternalServiceError(SERVICE_NAME, f"stock check failed for {product_id}: {e}")

        if resp.status_code == 404:
            return StockCheck(sufficient=False, stock_quantity=0)

        data = resp.json()
        return StockCheck(
            sufficient=bool(data.get("sufficient", False)),
            stock_quantity=_pick(data, "stockQuantity", "stock_quantity"),
        )

    def validate_many(self, product_ids: list[str]) -> list[ProductValidation]:
        if not product_ids:
            return []
        try:
            resp = self._request("POST", "/products/batch/validate", json=[str(p) for p in product_ids])
        except RequestException as e:
            raise ExternalServiceError(SERVICE_NAME, f"batch validation failed: {e}")

        if resp.status_code == 404:
            raise ExternalServiceError(SERVICE_NAME, "batch validation endpoint not found")

        rows = resp.json()
        #odpowiedz musi byc w tej samej kolejnosci co zapytanie
        if len(rows) != len(product_ids):
            raise ExternalServiceError(
                SERVICE_NAME,
                f"batch validation returned {len(rows)} results for {len(product_ids)} products",
            )

        return [
            ProductValidation(
                available=row.get("available"),
                stock_quantity=_pick(row, "stockQuantity", "stock_quantity"),
                current_price=_decimal(_pick(row, "currentPrice", "current_price")),
            )
            for row in rows
        ]
