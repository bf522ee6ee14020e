# tests/api/endpoints/test_payment_rules.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

RULES = "/payment-rules"


def deposit_rule(property_id, **overrides):
    data = {
        "property_id": property_id,
        "rule_name": "30% deposit",
        "rule_type": "deposit",
        "deposit_type": "percentage",
        "deposit_amount": 30,
        "deposit_due": "at_booking",
        "balance_due": "days_before_checkin",
        "balance_due_days": 14,
    }
    data.update(overrides)
    return data


@pytest.fixture()
def rule(client, auth, manager, lodge):
    response = client.post(f"{RULES}/", json=deposit_rule(lodge.id), headers=auth(manager))
    assert response.status_code == 201
    return response.json()


def test_requires_authentication(client: TestClient, lodge):
    response = client.get(f"{RULES}/", params={"property_id": lodge.id})
    assert response.status_code == 401


def test_guest_cannot_create_rule(client: TestClient, auth, guest, lodge):
    response = client.post(f"{RULES}/", json=deposit_rule(lodge.id), headers=auth(guest))
    assert response.status_code == 403


def test_create_rule(client: TestClient, rule, manager, lodge):
    assert rule["property_id"] == lodge.id
    assert rule["rule_type"] == "deposit"
    assert Decimal(rule["deposit_amount"]) == Decimal("30")
    assert rule["is_active"] is True
    assert rule["created_by"] == manager.id


def test_create_invalid_rule(client: TestClient, auth, manager, lodge):
    response = client.post(
        f"{RULES}/", json=deposit_rule(lodge.id, deposit_amount=150), headers=auth(manager)
    )
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "VALIDATION_001"
    assert "deposit_amount" in detail["details"]["validation_errors"]


def test_get_missing_rule(client: TestClient, auth, guest):
    response = client.get(f"{RULES}/9999", headers=auth(guest))
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "PAYMENT_RULE_001"


def test_assigned_rule_is_edit_locked(client: TestClient, auth, manager, rule, rooms):
    headers = auth(manager)
    response = client.post(
        f"{RULES}/{rule['id']}/rooms",
        json={"room_ids": [rooms[0].id, rooms[1].id]},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["room_names"] == ["Garden Suite", "Loft"]

    permission = client.get(f"{RULES}/{rule['id']}/edit-permission", headers=headers).json()
    assert permission["can_edit"] is False
    assert permission["assigned_room_count"] == 2

    response = client.patch(f"{RULES}/{rule['id']}", json={"deposit_amount": 40}, headers=headers)
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "PAYMENT_RULE_002"
    assert detail["details"]["room_names"] == ["Garden Suite", "Loft"]

    response = client.patch(
        f"{RULES}/{rule['id']}", json={"description": "Peak season terms"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["description"] == "Peak season terms"


def test_stale_version_is_a_conflict(client: TestClient, auth, manager, rule):
    response = client.patch(
        f"{RULES}/{rule['id']}",
        json={"rule_name": "Renamed", "expected_version": rule["version"] + 5},
        headers=auth(manager),
    )
    assert response.status_code == 409


def test_resolve_rule(client: TestClient, auth, guest, manager, lodge, rule, rooms):
    client.post(f"{RULES}/{rule['id']}/rooms", json={"room_ids": [rooms[0].id]}, headers=auth(manager))

    response = client.get(
        f"{RULES}/resolve",
        params={"property_id": lodge.id, "room_id": rooms[0].id, "as_of": "2025-08-15"},
        headers=auth(guest),
    )
    assert response.status_code == 200
    assert response.json()["rule"]["id"] == rule["id"]

    response = client.get(
        f"{RULES}/resolve",
        params={"property_id": lodge.id, "room_id": rooms[1].id, "as_of": "2025-08-15"},
        headers=auth(guest),
    )
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "PAYMENT_RULE_003"


def test_deactivate_and_delete(client: TestClient, auth, manager, lodge, rule):
    headers = auth(manager)
    response = client.post(f"{RULES}/{rule['id']}/deactivate", headers=headers)
    assert response.json()["is_active"] is False

    listed = client.get(f"{RULES}/", params={"property_id": lodge.id}, headers=headers).json()
    assert listed == []

    assert client.delete(f"{RULES}/{rule['id']}", headers=headers).status_code == 204
    assert client.get(f"{RULES}/{rule['id']}", headers=headers).status_code == 404


def test_expand_rule(client: TestClient, auth, guest, rule):
    response = client.post(
        f"{RULES}/{rule['id']}/expand",
        json={"total_price": "1000", "booking_date": "2025-05-01", "checkin_date": "2025-08-15"},
        headers=auth(guest),
    )
    assert response.status_code == 200
    lines = response.json()
    assert [line["label"] for line in lines] == ["Deposit", "Balance"]
    assert [Decimal(line["amount"]) for line in lines] == [Decimal("300"), Decimal("700")]
    assert lines[1]["due_date"] == "2025-08-01"


def test_expand_rejects_checkin_before_booking(client: TestClient, auth, guest, rule):
    response = client.post(
        f"{RULES}/{rule['id']}/expand",
        json={"total_price": "1000", "booking_date": "2025-05-01", "checkin_date": "2025-04-01"},
        headers=auth(guest),
    )
    assert response.status_code == 422
