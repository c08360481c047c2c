"""HTTP surface: auth, payload validation, envelopes and error format."""
from datetime import timedelta

from servicebook.extensions import db
from servicebook.models.booking import Booking
from servicebook.models.enums import BookingStatus, PaymentMethod
from servicebook.utils.time_utils import isoformat_z, utcnow


def booking_payload(provider, offer, **overrides):
    payload = {
        "provider_id": provider.id,
        "service_id": offer.service_id,
        "duration": 60,
        "scheduled_at": isoformat_z(utcnow() + timedelta(days=1)),
        "payment_method": PaymentMethod.CASH,
        "address_text": "12 Mango St, Makati",
    }
    payload.update(overrides)
    return payload


class TestAuthAndErrors:
    def test_missing_token(self, client):
        res = client.get("/api/v1/bookings")
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "UNAUTHORIZED"

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        error = res.get_json()["error"]
        assert (error["code"], error["message"], error["details"]) == ("NOT_FOUND", "Resource not found", {})
        assert error["trace_id"] == res.headers["X-Trace-Id"]

    def test_trace_id_is_echoed(self, client, factory, auth_headers):
        user = factory.user()
        res = client.get("/api/v1/notifications/unread-count",
                         headers={**auth_headers(user), "X-Trace-Id": "trace-123"})
        assert res.headers["X-Trace-Id"] == "trace-123"

    def test_trace_id_generated_when_absent(self, client, factory, auth_headers):
        user = factory.user()
        res = client.get("/api/v1/notifications/unread-count", headers=auth_headers(user))
        assert res.headers["X-Trace-Id"]


class TestBookingRoutes:
    def test_create_and_fetch(self, client, factory, auth_headers):
        customer = factory.user()
        provider = factory.provider()
        offer = factory.offer(provider, price_60=500)

        res = client.post("/api/v1/bookings", json=booking_payload(provider, offer), headers=auth_headers(customer))

        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        booking = body["booking"]
        assert booking["status"] == BookingStatus.PENDING
        assert booking["service_amount"] == 500.0
        assert booking["platform_fee"] == 40.0
        assert booking["provider_earning"] == 460.0
        assert booking["scheduled_at"].endswith("Z")

        res = client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers(provider.user))
        assert res.status_code == 200
        assert res.get_json()["booking"]["booking_number"] == booking["booking_number"]

    def test_schema_errors_are_per_field(self, client, factory, auth_headers):
        customer = factory.user()
        provider = factory.provider()
        offer = factory.offer(provider)

        res = client.post(
            "/api/v1/bookings",
            json=booking_payload(provider, offer, duration=45, latitude=123),
            headers=auth_headers(customer),
        )

        assert res.status_code == 422
        error = res.get_json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert set(error["details"]["fields"]) == {"duration", "latitude"}

    def test_stranger_cannot_view(self, client, factory, auth_headers):
        booking = factory.booking()
        stranger = factory.user()
        res = client.get(f"/api/v1/bookings/{booking.id}", headers=auth_headers(stranger))
        assert res.status_code == 403
        assert res.get_json()["error"]["code"] == "FORBIDDEN"

    def test_accept_with_insufficient_balance(self, client, factory, auth_headers):
        provider = factory.provider(balance=5)
        booking = factory.booking(provider=provider)

        res = client.post(f"/api/v1/bookings/{booking.id}/accept", headers=auth_headers(provider.user))

        assert res.status_code == 400
        error = res.get_json()["error"]
        assert error["code"] == "INSUFFICIENT_BALANCE"
        assert error["details"] == {"required": 40.0, "current": 5.0}

    def test_progress_and_invalid_transition(self, client, factory, auth_headers):
        provider = factory.provider()
        booking = factory.booking(provider=provider, status=BookingStatus.ACCEPTED)
        headers = auth_headers(provider.user)

        res = client.patch(f"/api/v1/bookings/{booking.id}/status",
                           json={"status": BookingStatus.PROVIDER_EN_ROUTE}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["booking"]["en_route_at"] is not None

        res = client.patch(f"/api/v1/bookings/{booking.id}/status",
                           json={"status": BookingStatus.COMPLETED}, headers=headers)
        assert res.status_code == 409
        error = res.get_json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["details"] == {
            "current_status": BookingStatus.PROVIDER_EN_ROUTE,
            "requested_status": BookingStatus.COMPLETED,
        }

    def test_cancel_with_reason(self, client, factory, auth_headers):
        booking = factory.booking()
        customer = db.session.get(Booking, booking.id).customer

        res = client.post(f"/api/v1/bookings/{booking.id}/cancel",
                          json={"reason": "Schedule conflict"}, headers=auth_headers(customer))

        assert res.status_code == 200
        assert res.get_json()["booking"]["cancel_reason"] == "Schedule conflict"

    def test_list_as_provider(self, client, factory, auth_headers):
        provider = factory.provider()
        factory.booking(provider=provider)
        factory.booking(provider=provider, status=BookingStatus.ACCEPTED)

        res = client.get("/api/v1/bookings?role=provider&status=ACCEPTED", headers=auth_headers(provider.user))

        body = res.get_json()
        assert len(body["bookings"]) == 1
        assert body["pagination"]["total"] == 1

    def test_location_sos_and_chat(self, client, factory, auth_headers):
        provider = factory.provider()
        booking = factory.booking(provider=provider, status=BookingStatus.PROVIDER_EN_ROUTE)
        customer = db.session.get(Booking, booking.id).customer
        as_provider = auth_headers(provider.user)
        as_customer = auth_headers(customer)

        res = client.post(f"/api/v1/bookings/{booking.id}/location",
                          json={"latitude": 14.5547, "longitude": 121.0244}, headers=as_provider)
        assert res.status_code == 200

        res = client.get(f"/api/v1/bookings/{booking.id}/location", headers=as_customer)
        assert res.get_json()["location"]["latitude"] == 14.5547

        res = client.post(f"/api/v1/bookings/{booking.id}/messages", json={"content": "Hi!"}, headers=as_customer)
        assert res.status_code == 201
        assert res.get_json()["message"]["is_own"] is True

        res = client.get(f"/api/v1/bookings/{booking.id}/messages", headers=as_provider)
        body = res.get_json()
        assert [m["is_own"] for m in body["messages"]] == [False]
        assert body["unread"] == 1

        res = client.post(f"/api/v1/bookings/{booking.id}/messages/read", headers=as_provider)
        assert res.get_json()["updated"] == 1

        res = client.post(f"/api/v1/bookings/{booking.id}/sos", json={"message": "Help"}, headers=as_customer)
        assert res.status_code == 201
        assert res.get_json()["report_id"]

    def test_hide(self, client, factory, auth_headers):
        booking = factory.booking(status=BookingStatus.COMPLETED)
        customer = db.session.get(Booking, booking.id).customer

        res = client.delete(f"/api/v1/bookings/{booking.id}/hide", headers=auth_headers(customer))
        assert res.status_code == 200

        res = client.get("/api/v1/bookings", headers=auth_headers(customer))
        assert res.get_json()["bookings"] == []


class TestWalletRoutes:
    def test_top_up_and_balance(self, client, factory, auth_headers):
        provider = factory.provider()
        headers = auth_headers(provider.user)

        res = client.post("/api/v1/wallet/provider/top-up",
                          json={"amount": "100", "payment_method": PaymentMethod.GCASH}, headers=headers)
        assert res.status_code == 201
        assert res.get_json()["transaction"]["balance_after"] == 100.0

        res = client.get("/api/v1/wallet/provider", headers=headers)
        wallet = res.get_json()["wallet"]
        assert wallet["balance"] == 100.0
        assert wallet["platform_fee_percentage"] == 8.0

        res = client.get("/api/v1/wallet/provider/transactions", headers=headers)
        assert len(res.get_json()["transactions"]) == 1

    def test_top_up_rounds_half_up(self, client, factory, auth_headers):
        provider = factory.provider()

        res = client.post("/api/v1/wallet/provider/top-up",
                          json={"amount": "10.005", "payment_method": PaymentMethod.CARD},
                          headers=auth_headers(provider.user))

        assert res.status_code == 201
        assert res.get_json()["transaction"]["amount"] == 10.01

    def test_fee_check(self, client, factory, auth_headers):
        provider = factory.provider()

        res = client.get("/api/v1/wallet/provider/fee-check?amount=1000", headers=auth_headers(provider.user))

        assert res.get_json()["fee_check"] == {"has_enough": False, "required": 80.0, "current": 0.0}

    def test_fee_check_needs_amount(self, client, factory, auth_headers):
        provider = factory.provider()
        res = client.get("/api/v1/wallet/provider/fee-check", headers=auth_headers(provider.user))
        assert res.status_code == 422

    def test_negative_top_up(self, client, factory, auth_headers):
        provider = factory.provider()
        res = client.post("/api/v1/wallet/provider/top-up",
                          json={"amount": "-5", "payment_method": PaymentMethod.CARD},
                          headers=auth_headers(provider.user))
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "INVALID_AMOUNT"

    def test_shop_wallet_belongs_to_owner(self, client, factory, auth_headers):
        shop = factory.shop(balance=75)
        res = client.get("/api/v1/wallet/shop", headers=auth_headers(shop.owner))
        assert res.get_json()["wallet"]["balance"] == 75.0

    def test_customer_has_no_provider_wallet(self, client, factory, auth_headers):
        customer = factory.user()
        res = client.get("/api/v1/wallet/provider", headers=auth_headers(customer))
        assert res.status_code == 404


class TestNotificationRoutes:
    def test_inbox_flow(self, client, factory, auth_headers, services):
        user = factory.user()
        notif = services["notifications"].create(user.id, "booking_status", "Provider on the way", "Soon")
        services["notifications"].create(user.id, "booking_status", "Arrived", "Here")
        headers = auth_headers(user)

        res = client.get("/api/v1/notifications", headers=headers)
        assert [n["title"] for n in res.get_json()["notifications"]] == ["Arrived", "Provider on the way"]

        res = client.post(f"/api/v1/notifications/{notif.id}/read", headers=headers)
        assert res.get_json()["notification"]["is_read"] is True

        res = client.get("/api/v1/notifications/unread-count", headers=headers)
        assert res.get_json()["unread"] == 1

        res = client.post("/api/v1/notifications/read-all", headers=headers)
        assert res.get_json()["updated"] == 1

    def test_unknown_notification(self, client, factory, auth_headers):
        user = factory.user()
        res = client.post("/api/v1/notifications/ntf-missing/read", headers=auth_headers(user))
        assert res.status_code == 404
