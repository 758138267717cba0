import pytest
import asyncio
import httpx
from decimal import Decimal
from fastapi.testclient import TestClient
from unittest.mock import patch

from main import app
from models import Account
from repositories import reset_repositories, get_account_repository

client = TestClient(app)


@pytest.fixture(autouse=True)
def reset_state():
    """Reset repositories before each test."""
    reset_repositories()


def create(account_id, balance):
    return client.post("/v1/accounts", json={"accountId": account_id, "balance": balance})


class TestCreateAccount:
    """Test account creation endpoint."""

    def test_create_account(self):
        response = create("Id-123", 1000)

        assert response.status_code == 201
        assert response.json() == {"accountId": "Id-123", "balance": "1000"}

        account = get_account_repository().get("Id-123")
        assert account.accountId == "Id-123"
        assert account.balance == Decimal("1000")

    def test_create_duplicate_account(self):
        assert create("Id-123", 1000).status_code == 201

        response = create("Id-123", 50)

        assert response.status_code == 400
        data = response.json()
        assert data["detail"] == "Account id Id-123 already exists!"
        assert data["error_code"] == "DUPLICATE_ACCOUNT_ID"
        assert get_account_repository().get("Id-123").balance == Decimal("1000")

    def test_create_account_no_account_id(self):
        response = client.post("/v1/accounts", json={"balance": 1000})
        assert response.status_code == 422

    def test_create_account_no_balance(self):
        response = client.post("/v1/accounts", json={"accountId": "Id-123"})
        assert response.status_code == 422

    def test_create_account_no_body(self):
        response = client.post("/v1/accounts")
        assert response.status_code == 422

    def test_create_account_negative_balance(self):
        response = create("Id-123", -1000)
        assert response.status_code == 422
        assert get_account_repository().get("Id-123") is None

    def test_create_account_empty_account_id(self):
        response = create("", 1000)
        assert response.status_code == 422

    def test_create_account_blank_account_id(self):
        response = create("   ", 1000)
        assert response.status_code == 422


class TestGetAccount:
    """Test account lookup endpoint."""

    def test_get_account(self):
        get_account_repository().create(Account(accountId="Id-555", balance=Decimal("123.45")))

        response = client.get("/v1/accounts/Id-555")

        assert response.status_code == 200
        assert response.json() == {"accountId": "Id-555", "balance": "123.45"}

    def test_get_account_keeps_all_digits(self):
        get_account_repository().create(Account(accountId="X", balance=Decimal("12345678901234567.89")))

        response = client.get("/v1/accounts/X")

        assert response.status_code == 200
        assert Decimal(response.json()["balance"]) == Decimal("12345678901234567.89")

    def test_get_missing_account(self):
        response = client.get("/v1/accounts/Id-404")

        assert response.status_code == 404
        assert response.json()["error_code"] == "ACCOUNT_NOT_FOUND"


class TestTransfer:
    """Test the transfer endpoint."""

    def transfer(self, account_from_id, account_to_id, amount):
        return client.post("/v1/accounts/transfer", params={
            "accountFromId": account_from_id,
            "accountToId": account_to_id,
            "amount": amount
        })

    def test_transfer_successful(self):
        create("Id-1", 1000)
        create("Id-2", 500)

        response = self.transfer("Id-1", "Id-2", "200")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["accountFromId"] == "Id-1"
        assert data["accountToId"] == "Id-2"
        assert Decimal(data["amount"]) == Decimal("200")

        assert client.get("/v1/accounts/Id-1").json()["balance"] == "800"
        assert client.get("/v1/accounts/Id-2").json()["balance"] == "700"

    def test_transfer_insufficient_funds(self):
        create("Id-1", 100)
        create("Id-2", 500)

        response = self.transfer("Id-1", "Id-2", "200")

        assert response.status_code == 400
        data = response.json()
        assert data["error_code"] == "INSUFFICIENT_FUNDS"
        assert data["detail"] == "Insufficient balance in account Id-1"
        assert client.get("/v1/accounts/Id-1").json()["balance"] == "100"
        assert client.get("/v1/accounts/Id-2").json()["balance"] == "500"

    def test_transfer_to_missing_account(self):
        create("Id-1", 1000)

        response = self.transfer("Id-1", "NonExistingAccount", "100")

        assert response.status_code == 404
        assert response.json()["error_code"] == "ACCOUNT_NOT_FOUND"
        assert "NonExistingAccount" in response.json()["detail"]
        assert client.get("/v1/accounts/Id-1").json()["balance"] == "1000"

    def test_transfer_negative_amount(self):
        create("Id-1", 1000)
        create("Id-2", 500)

        response = self.transfer("Id-1", "Id-2", "-100")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_AMOUNT"

    def test_transfer_zero_amount(self):
        create("Id-1", 1000)
        create("Id-2", 500)

        response = self.transfer("Id-1", "Id-2", "0")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_AMOUNT"

    def test_transfer_same_account(self):
        create("Id-1", 1000)

        response = self.transfer("Id-1", "Id-1", "10")

        assert response.status_code == 400
        assert response.json()["error_code"] == "SAME_ACCOUNT_TRANSFER"
        assert client.get("/v1/accounts/Id-1").json()["balance"] == "1000"

    def test_transfer_missing_params(self):
        response = client.post("/v1/accounts/transfer", params={"accountFromId": "Id-1"})
        assert response.status_code == 422

    def test_transfer_non_numeric_amount(self):
        response = self.transfer("Id-1", "Id-2", "lots")
        assert response.status_code == 422

    def test_transfer_decimal_precision(self):
        create("Id-1", 1000)
        create("Id-2", 0)

        assert self.transfer("Id-1", "Id-2", "99.99").status_code == 200
        assert self.transfer("Id-1", "Id-2", "0.01").status_code == 200

        assert get_account_repository().get("Id-1").balance == Decimal("900.00")
        assert get_account_repository().get("Id-2").balance == Decimal("100.00")

    def test_transfer_response_keeps_all_digits(self):
        create("Id-1", "100000000000000000000000000000")
        create("Id-2", "0.01")

        response = self.transfer("Id-1", "Id-2", "99999999999999999999999999999.99")

        assert response.status_code == 200
        assert Decimal(response.json()["amount"]) == Decimal("99999999999999999999999999999.99")
        assert Decimal(client.get("/v1/accounts/Id-1").json()["balance"]) == Decimal("0.01")
        assert Decimal(client.get("/v1/accounts/Id-2").json()["balance"]) == Decimal("100000000000000000000000000000.00")

    @patch('services.logger')
    def test_logging_on_error(self, mock_logger):
        """Test that rejected transfers are logged."""
        create("Id-1", 1000)

        response = self.transfer("Id-1", "Id-999", "10")

        assert response.status_code == 404
        mock_logger.warning.assert_called()


class TestConcurrentRequests:
    """Test concurrent transfer requests over HTTP."""

    @pytest.mark.asyncio
    async def test_concurrent_insufficient_funds(self):
        """Only as many transfers succeed as the balance allows."""
        repo = get_account_repository()
        repo.create(Account(accountId="acc_1", balance=Decimal("500")))
        repo.create(Account(accountId="acc_2", balance=Decimal("0")))

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            tasks = [
                ac.post("/v1/accounts/transfer", params={
                    "accountFromId": "acc_1",
                    "accountToId": "acc_2",
                    "amount": "200"
                })
                for _ in range(5)
            ]
            results = await asyncio.gather(*tasks)

        successful = [r for r in results if r.status_code == 200]
        failed = [r for r in results if r.status_code == 400]

        assert len(successful) == 2
        assert len(failed) == 3
        assert get_account_repository().get("acc_1").balance == Decimal("100")
        assert get_account_repository().get("acc_2").balance == Decimal("400")


class TestHealthAndUtility:
    """Test health check and utility endpoints."""

    def test_health_check(self):
        create("Id-1", 10)
        create("Id-2", 20)

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["accounts_count"] == 2

    def test_root_endpoint(self):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        assert "docs" in data


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
