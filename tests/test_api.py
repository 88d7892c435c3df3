from typing import Any

import pytest
from fastapi.testclient import TestClient

from spend_categorizer.app import create_app
from spend_categorizer.classifiers.model import CategoryModel
from spend_categorizer.manager import CategorizationEngine


@pytest.fixture
def engine() -> CategorizationEngine:
    return CategorizationEngine(model=CategoryModel(), validate_taxonomy=False)


@pytest.fixture
def client(engine: CategorizationEngine) -> TestClient:
    return TestClient(create_app(engine))


def tx(tx_id: str, description: str, category: str | None = None) -> dict[str, Any]:
    return {
        "id": tx_id,
        "date": "2024-03-01T00:00:00",
        "description": description,
        "amount": -12.5,
        "category": category,
    }


TRAINING_PAYLOAD = [
    tx("1", "coffee shop", "Food"),
    tx("2", "coffee house", "Food"),
    tx("3", "uber ride", "Transport"),
    tx("4", "taxi ride", "Transport"),
]


def test_categorize(client: TestClient) -> None:
    response = client.post("/categorize", json={
        "transactions": [tx("1", "WHOLE FOODS MARKET"), tx("2", "ZXQW 9981")],
        "enabled_phases": [1, 2],
        "phase2_methods": ["keyword"],
    })

    assert response.status_code == 200
    data = response.json()
    assert data["categorized"] == 1
    assert data["transactions"][0]["category"] == "Food & Dining"
    assert data["transactions"][0]["confidence"] == pytest.approx(0.9)
    assert data["transactions"][1]["category"] is None


def test_categorize_rejects_unknown_phase(client: TestClient) -> None:
    response = client.post("/categorize", json={"transactions": [], "enabled_phases": [4]})
    assert response.status_code == 422

    response = client.post("/categorize", json={"transactions": [], "phase2_methods": ["llm"]})
    assert response.status_code == 422


def test_debug(client: TestClient) -> None:
    response = client.post("/debug", json={"transactions": [tx("1", "WHOLE FOODS MARKET")], "enabled_phases": [1, 2]})

    assert response.status_code == 200
    [trace] = response.json()
    assert trace["transaction_id"] == "1"
    assert trace["final_category"] == "Food & Dining"


def test_train_insufficient_data(client: TestClient) -> None:
    response = client.post("/train", json={"transactions": [tx("1", "coffee", "Food")]})

    assert response.status_code == 422
    assert "Insufficient training data" in response.json()["detail"]


def test_train_and_model_status(client: TestClient) -> None:
    response = client.get("/model")
    assert response.json() == {"trained": False, "metrics": None}

    response = client.post("/train", json={
        "transactions": TRAINING_PAYLOAD,
        "config": {"epochs": 2, "validation_split": 0.0},
    })
    assert response.status_code == 200
    assert response.json()["training_samples"] == 4

    response = client.get("/model")
    assert response.json()["trained"] is True

    response = client.get("/model/info")
    assert response.status_code == 200
    assert response.json()["phase3"]["is_trained"] is True

    response = client.post("/model/reset")
    assert response.status_code == 200
    assert client.get("/model").json()["trained"] is False


def test_learn_rule(client: TestClient) -> None:
    response = client.post("/rules/learn", json={"transaction": tx("1", "Joes Pizza", "Takeaway")})

    assert response.status_code == 200
    assert response.json()[0]["keywords"] == ["joes", "pizza"]
    assert len(client.get("/rules").json()) == 1


def test_taxonomy(client: TestClient) -> None:
    assert "Income" in client.get("/taxonomy").json()

    response = client.post("/taxonomy/merge", json={"categories": {"Travel": ["Flights"]}})

    assert response.status_code == 200
    data = response.json()
    assert data["added_categories"] == ["Travel"]
    assert data["taxonomy"]["Travel"] == ["Flights"]
    assert client.get("/taxonomy").json()["Travel"] == ["Flights"]


def test_missing_engine() -> None:
    client = TestClient(create_app())

    response = client.get("/model")

    assert response.status_code == 500
