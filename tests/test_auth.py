import pytest
from httpx import AsyncClient

from conftest import TEST_USER_ID
from invoice_co2.core.config import get_settings

TEST_API_KEY = "test-api-key"


@pytest.fixture
def api_key_required(monkeypatch: pytest.MonkeyPatch, mock_settings: None) -> None:
    monkeypatch.setenv("API_KEY", TEST_API_KEY)
    get_settings.cache_clear()


async def test_missing_user_id_returns_401(client: AsyncClient) -> None:
    response = await client.get("/api/v1/invoices")
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "message": "Authentication required. Please log in.",
    }


async def test_blank_user_id_returns_401(client: AsyncClient) -> None:
    response = await client.get("/api/v1/invoices", headers={"X-User-Id": "   "})
    assert response.status_code == 401


async def test_user_id_is_enough_when_no_api_key_configured(
    client: AsyncClient,
) -> None:
    response = await client.get("/api/v1/invoices", headers={"X-User-Id": TEST_USER_ID})
    assert response.status_code == 200


async def test_missing_api_key_returns_401_when_configured(
    api_key_required: None, client: AsyncClient
) -> None:
    response = await client.get("/api/v1/invoices", headers={"X-User-Id": TEST_USER_ID})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or missing API key"


async def test_wrong_api_key_returns_401(
    api_key_required: None, client: AsyncClient
) -> None:
    response = await client.get(
        "/api/v1/invoices",
        headers={"X-User-Id": TEST_USER_ID, "X-API-Key": "wrong"},
    )
    assert response.status_code == 401


async def test_correct_api_key_passes_auth(
    api_key_required: None, client: AsyncClient
) -> None:
    response = await client.get(
        "/api/v1/invoices",
        headers={"X-User-Id": TEST_USER_ID, "X-API-Key": TEST_API_KEY},
    )
    assert response.status_code == 200
