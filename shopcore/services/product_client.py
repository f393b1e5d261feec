# shopcore/services/product_client.py
from typing import Protocol

import requests
from pydantic import ValidationError as SchemaError
from requests import RequestException

from shopcore.domain.errors import CatalogProtocolError, CatalogUnavailableError
from shopcore.domain.types import ProductSnapshot
from shopcore.utils.settings import PRODUCT_SERVICE_URL, STOCK_ORACLE_TIMEOUT
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

#timeouts and rate limits clear up on their own
RETRYABLE_STATUSES = (408, 429)


class StockOracle(Protocol):
    def lookup(self, product_id: str, variation_id: str | None = None) -> ProductSnapshot | None:
        """Current price and availability, or None when the product is not sellable."""
        ...


class HttpStockOracle:
    """
    Stock oracle backed by the catalog service.
    404 or a non-published product -> None
    timeouts, connection errors, 5xx, 408, 429 -> CatalogUnavailableError (caller may retry)
    any other 4xx -> CatalogProtocolError
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = STOCK_ORACLE_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def lookup(self, product_id: str, variation_id: str | None = None) -> ProductSnapshot | None:
        url = f"{self.base_url}/products/{product_id}"
        if variation_id:
            url = f"{url}/variations/{variation_id}"
        logger.info(f"StockOracle GET {url}")

        try:
            resp = self.http.get(url, timeout=self.timeout)
        except RequestException as e:
            logger.error(f"Catalog lookup failed for {product_id}: {e}")
            raise CatalogUnavailableError(f"Catalog unavailable: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 500 or resp.status_code in RETRYABLE_STATUSES:
            raise CatalogUnavailableError(f"Catalog returned {resp.status_code} for {product_id}")
        if resp.status_code >= 400:
            logger.error(f"Catalog refused lookup of {product_id}: {resp.status_code}")
            raise CatalogProtocolError(
                f"Catalog returned {resp.status_code} for {product_id}",
                {"status_code": resp.status_code},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise CatalogUnavailableError(f"Catalog sent a non-JSON body for {product_id}") from e
        if not isinstance(data, dict):
            raise CatalogUnavailableError(f"Catalog sent a non-object body for {product_id}")
        if data.get("status", "published") != "published":
            logger.info(f"Product {product_id} is {data.get('status')}, treating as missing")
            return None

        try:
            return ProductSnapshot(
                product_id=product_id,
                variation_id=variation_id,
                name=data["name"],
                sku=data.get("sku") or "",
                image=data.get("image"),
                price=data["price"],
                available_stock=data.get("stock_quantity", 0),
                stock_status=data.get("stock_status", "instock"),
                attributes=data.get("attributes") or {},
            )
        except (KeyError, SchemaError) as e:
            raise CatalogUnavailableError(f"Malformed catalog payload for {product_id}: {e}") from e
