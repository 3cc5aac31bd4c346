def _initialize(client, items=None):
    payload = {
        "eventId": "evt_harbourside",
        "cartItems": items or [
            {"ticketId": "general", "quantity": 2},
            {"ticketId": "vip", "quantity": 1},
        ],
    }
    response = client.post("/api/payment/initialize", json=payload)
    assert response.status_code == 200
    return response.json()


def _validate(client, session_id, buyer_data):
    response = client.post(
        "/api/payment/validate-buyer",
        json={"sessionId": session_id, "buyerInfo": buyer_data},
    )
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200


def test_list_event_tickets(client):
    response = client.get("/events/evt_harbourside/tickets")

    assert response.status_code == 200
    assert [ticket["name"] for ticket in response.json()] == [
        "General Admission",
        "VIP Package",
        "Backstage Pass",
    ]


def test_unknown_event_tickets(client):
    assert client.get("/events/evt_missing/tickets").status_code == 404


def test_checkout_flow(client, buyer_data, card_data):
    handle = _initialize(client)
    session_id = handle["sessionId"]
    assert handle["totalAmount"] == "157.00"

    validated = _validate(client, session_id, buyer_data)
    assert validated["success"] is True

    intent_response = client.post(
        "/api/payment/create-intent",
        json={"sessionId": session_id},
    )
    assert intent_response.status_code == 200
    intent = intent_response.json()
    assert intent["isSimulated"] is True

    confirm_response = client.post(
        "/api/payment/confirm",
        json={
            "sessionId": session_id,
            "paymentIntentId": intent["paymentIntentId"],
            "paymentDetails": card_data,
        },
    )
    assert confirm_response.status_code == 200
    order = confirm_response.json()
    assert order["success"] is True
    assert order["orderId"].startswith("order_")
    assert order["tickets"][0] == {
        "ticketId": "general",
        "quantity": 2,
        "price": "39.00",
        "name": "General Admission",
    }

    status_response = client.get(f"/api/payment/session-status/{session_id}")
    assert status_response.json()["status"] == "payment_succeeded"


def test_apply_promo(client):
    session_id = _initialize(client)["sessionId"]

    response = client.post(
        "/api/payment/apply-promo",
        json={"sessionId": session_id, "promoCode": "WELCOME"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["isValid"] is True
    assert body["totalAfterDiscount"] == "133.45"

    invalid = client.post(
        "/api/payment/apply-promo",
        json={"sessionId": session_id, "promoCode": "RANDOM123"},
    ).json()
    assert invalid["isValid"] is False
    assert invalid["message"] == "Invalid promo code"


def test_initialize_with_unknown_ticket(client):
    response = client.post(
        "/api/payment/initialize",
        json={"eventId": "evt_harbourside", "cartItems": [{"ticketId": "nope", "quantity": 1}]},
    )

    assert response.status_code == 404


def test_initialize_over_availability(client):
    response = client.post(
        "/api/payment/initialize",
        json={"eventId": "evt_harbourside", "cartItems": [{"ticketId": "backstage", "quantity": 4}]},
    )

    assert response.status_code == 400


def test_initialize_with_empty_cart(client):
    response = client.post(
        "/api/payment/initialize",
        json={"eventId": "evt_harbourside", "cartItems": []},
    )

    assert response.status_code == 400


def test_invalid_buyer_info(client, buyer_data):
    session_id = _initialize(client)["sessionId"]
    buyer_data["phone"] = "0412345678"

    response = client.post(
        "/api/payment/validate-buyer",
        json={"sessionId": session_id, "buyerInfo": buyer_data},
    )

    assert response.status_code == 422
    assert "phone" in response.json()["detail"]["errors"]


def test_unknown_session(client, buyer_data):
    response = client.post(
        "/api/payment/validate-buyer",
        json={"sessionId": "sess_missing", "buyerInfo": buyer_data},
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found"


def test_intent_before_buyer_info_conflicts(client):
    session_id = _initialize(client)["sessionId"]

    response = client.post("/api/payment/create-intent", json={"sessionId": session_id})

    assert response.status_code == 409


def test_declined_card(client, buyer_data, card_data):
    session_id = _initialize(client)["sessionId"]
    _validate(client, session_id, buyer_data)
    intent = client.post("/api/payment/create-intent", json={"sessionId": session_id}).json()
    card_data["cardNumber"] = "4000000000000002"

    response = client.post(
        "/api/payment/confirm",
        json={
            "sessionId": session_id,
            "paymentIntentId": intent["paymentIntentId"],
            "paymentDetails": card_data,
        },
    )

    assert response.status_code == 402
    assert response.json()["detail"]["code"] == "card_declined"


def test_expired_session(client, clock, buyer_data):
    session_id = _initialize(client)["sessionId"]

    clock.advance(601)
    status_response = client.get(f"/api/payment/session-status/{session_id}")
    assert status_response.json()["isExpired"] is True
    assert status_response.json()["status"] == "expired"

    response = client.post(
        "/api/payment/validate-buyer",
        json={"sessionId": session_id, "buyerInfo": buyer_data},
    )
    assert response.status_code == 410


def test_discard_session(client):
    session_id = _initialize(client)["sessionId"]

    assert client.delete(f"/api/payment/sessions/{session_id}").status_code == 204
    assert client.delete(f"/api/payment/sessions/{session_id}").status_code == 404


def test_validate_phone(client):
    response = client.post(
        "/api/validate-phone",
        json={"phone": "0412 345 678", "countryCode": "AU"},
    )

    assert response.json() == {"success": True, "isValid": True, "formatted": "+61412345678"}

    invalid = client.post("/api/validate-phone", json={"phone": "12345"}).json()
    assert invalid["isValid"] is False
