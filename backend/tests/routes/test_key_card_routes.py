from tests.factories.hotel import headers_for


def test_register_and_list_cards(client, staff):
    created = client.post(
        "/api/v1/key-cards", json={"card_number": "KC-777"}, headers=headers_for(staff)
    )
    duplicate = client.post(
        "/api/v1/key-cards", json={"card_number": "KC-777"}, headers=headers_for(staff)
    )

    assert created.status_code == 201
    assert created.json()["status"] == "inactive"
    assert duplicate.status_code == 409
    listed = client.get("/api/v1/key-cards", headers=headers_for(staff)).json()
    assert [c["card_number"] for c in listed] == ["KC-777"]


def test_mark_card_lost_and_read_history(client, staff, key_cards):
    card = key_cards[0]

    response = client.patch(
        f"/api/v1/key-cards/{card.id}/status",
        json={"status": "lost", "reason": "guest lost it"},
        headers=headers_for(staff),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "lost"

    details = client.get(f"/api/v1/key-cards/{card.id}", headers=headers_for(staff)).json()
    assert details["card"]["status"] == "lost"
    assert details["history"][-1]["new_status"] == "lost"
    assert details["stay_id"] is None

    available = client.get("/api/v1/key-cards/available", headers=headers_for(staff)).json()
    assert card.id not in {c["id"] for c in available}

    lost = client.get("/api/v1/key-cards?status=lost", headers=headers_for(staff)).json()
    assert [c["id"] for c in lost] == [card.id]


def test_activation_through_status_route_is_refused(client, staff, key_cards):
    response = client.patch(
        f"/api/v1/key-cards/{key_cards[0].id}/status",
        json={"status": "active"},
        headers=headers_for(staff),
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "ACTIVATION_REQUIRES_ALLOCATION"


def test_guests_cannot_manage_cards(client, guest, key_cards):
    assert client.get("/api/v1/key-cards", headers=headers_for(guest)).status_code == 403


def test_unknown_card(client, staff):
    assert client.get("/api/v1/key-cards/missing", headers=headers_for(staff)).status_code == 404


def test_health_and_prometheus(client):
    assert client.get("/health").json()["status"] == "healthy"

    metrics = client.get("/metrics/prometheus")
    assert metrics.status_code == 200
    assert "innkeeper_background_jobs_queued" in metrics.text
