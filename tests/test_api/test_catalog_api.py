"""
Tests for customers, quotes and backup endpoints
"""
import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_account_id, get_db
from app.main import app


@pytest.fixture
def client(db_session):
    def override_db():
        yield db_session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_account_id] = lambda: 1
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_customer_crud(client):
    created = client.post("/api/v1/customers/", json={
        "name": "Padaria Central", "email": "contato@padaria.com.br", "cpf_cnpj": "11.222.333/0001-81",
    })
    assert created.status_code == 201
    customer = created.json()
    assert customer["client_type"] == "company"
    assert customer["cpf_cnpj"] == "11222333000181"

    found = client.get("/api/v1/customers/", params={"search": "padaria"}).json()
    assert [c["id"] for c in found] == [customer["id"]]

    assert client.delete(f"/api/v1/customers/{customer['id']}").status_code == 200
    assert client.get(f"/api/v1/customers/{customer['id']}").status_code == 404


def test_customer_invalid_document(client):
    response = client.post("/api/v1/customers/", json={"name": "João", "phone": "1", "cpf_cnpj": "123"})
    assert response.status_code == 400


def test_quote_convert(client):
    quote = client.post("/api/v1/quotes/", json={
        "title": "Landing page",
        "items": [{"description": "Landing page", "unit_price": "1200"}],
        "discount": "200",
    }).json()
    assert quote["quote_number"] == "ORC-0001"
    assert quote["total"] == "1000.00"

    response = client.post(f"/api/v1/quotes/{quote['id']}/convert", json={"payment_method": "pix"})
    assert response.status_code == 201
    sale = response.json()
    assert sale["quote_id"] == quote["id"]
    assert sale["payment_status"] == "paid"
    assert client.get(f"/api/v1/quotes/{quote['id']}").json()["status"] == "approved"

    again = client.post(f"/api/v1/quotes/{quote['id']}/convert", json={})
    assert again.status_code == 400


def test_backup_export_import(client):
    client.post("/api/v1/customers/", json={"name": "Maria", "phone": "11999990000"})

    backup = client.get("/api/v1/backup/export").json()
    assert backup["version"] == "2.0"
    assert backup["exported_by"] == "1"
    assert len(backup["data"]["customers"]) == 1

    response = client.post("/api/v1/backup/import", json=backup)
    assert response.status_code == 200
    assert response.json()["counts"]["customers"] == 1

    bad = client.post("/api/v1/backup/import", json={"version": "9.0", "data": {}})
    assert bad.status_code == 400


def test_backup_import_malformed_value_is_400(client):
    client.post("/api/v1/customers/", json={"name": "Maria", "phone": "11999990000"})
    backup = client.get("/api/v1/backup/export").json()
    backup["data"]["customers"][0]["created_at"] = "not-a-date"

    response = client.post("/api/v1/backup/import", json=backup)
    assert response.status_code == 400
    assert "created_at" in response.json()["detail"]
