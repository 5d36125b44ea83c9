# storefront/services/product_client.py
import requests

from storefront.domain.errors import NotFound
from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """Klient katalogu produktow, tylko odczyt: id -> name, description, price."""

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def fetch_product(self, product_id: int) -> dict:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        # 404 to odpowiedz biznesowa, nie ponawiamy
        if resp.status_code == 404:
            raise NotFound(f"Product not found with id: {product_id}")
        resp.raise_for_status()
        return resp.json()


def get_product_client() -> ProductClient:
    return ProductClient()
