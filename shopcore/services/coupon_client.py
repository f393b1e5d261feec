# shopcore/services/coupon_client.py
from typing import Protocol

import requests
from pydantic import ValidationError as SchemaError
from requests import RequestException

from shopcore.domain.errors import CatalogProtocolError, CatalogUnavailableError
from shopcore.domain.types import Coupon, coupon_adapter
from shopcore.services.product_client import RETRYABLE_STATUSES
from shopcore.utils.settings import COUPON_SERVICE_URL, STOCK_ORACLE_TIMEOUT
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


class CouponResolver(Protocol):
    def resolve(self, code: str, subtotal: int) -> Coupon | None:
        """Discount terms for ``code`` at this subtotal, or None when the coupon is invalid."""
        ...


class HttpCouponResolver:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = STOCK_ORACLE_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or COUPON_SERVICE_URL).rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def resolve(self, code: str, subtotal: int) -> Coupon | None:
        url = f"{self.base_url}/coupons/{code}"
        logger.info(f"CouponResolver GET {url} subtotal={subtotal}")

        try:
            resp = self.http.get(url, params={"subtotal": subtotal}, timeout=self.timeout)
        except RequestException as e:
            raise CatalogUnavailableError(f"Coupon service unavailable: {e}") from e

        #unknown, expired or below minimum spend
        if resp.status_code in (404, 410, 422):
            return None
        if resp.status_code >= 500 or resp.status_code in RETRYABLE_STATUSES:
            raise CatalogUnavailableError(f"Coupon service returned {resp.status_code}")
        if resp.status_code >= 400:
            logger.error(f"Coupon service refused {code}: {resp.status_code}")
            raise CatalogProtocolError(
                f"Coupon service returned {resp.status_code}",
                {"status_code": resp.status_code},
            )

        try:
            payload = dict(resp.json())
        except (TypeError, ValueError) as e:
            raise CatalogUnavailableError("Coupon service sent a non-object body") from e
        payload.setdefault("code", code)
        try:
            return coupon_adapter.validate_python(payload)
        except SchemaError as e:
            logger.warning(f"Coupon {code} has an unusable payload: {e}")
            return None
