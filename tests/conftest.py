import base64

import pytest

from rest_framework.test import APIClient

from modules.inventory.models import Stock
from modules.orders.repositories import OrderDjangoRepository

ORDER_AMOUNT = 5_000_000  # 50 000 so'm in tiyin


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


def _basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


@pytest.fixture()
def basic_auth():
    """Builds an ``Authorization: Basic`` header value."""
    return _basic_auth


@pytest.fixture()
def make_order():
    """Factory creating a pending order through the repository.

    The default order holds one T-shirt (2 x 20 000 so'm) and one tote
    bag (10 000 so'm): 50 000 so'm = 5 000 000 tiyin in total.
    """
    repository = OrderDjangoRepository()

    def _make(**overrides):
        data = {
            "amount": ORDER_AMOUNT,
            "customer_name": "Dilnoza Karimova",
            "customer_phone": "+998901112233",
            "customer_address": "Tashkent, Chilonzor 5",
            "items": [
                {
                    "product_id": "101-M-black",
                    "name": "Cotton T-shirt",
                    "quantity": 2,
                    "price": 2_000_000,
                    "color": "black",
                    "size": "M",
                    "ikpu_code": "06109001001000000",
                    "package_code": "1501847",
                    "vat_percent": 12,
                },
                {
                    "product_id": "102-nosize-nocolor",
                    "name": "Canvas tote bag",
                    "quantity": 1,
                    "price": 1_000_000,
                },
            ],
        }
        data.update(overrides)
        return repository.create(data)

    return _make


@pytest.fixture()
def order(make_order):
    return make_order()


@pytest.fixture()
def stock():
    """Stock rows matching the default order items."""
    return {
        "tshirt": Stock.objects.create(
            product_id=101,
            product_name="Cotton T-shirt",
            color="black",
            size="M",
            quantity=10,
        ),
        "tote": Stock.objects.create(
            product_id=102, product_name="Canvas tote bag", quantity=1
        ),
    }
