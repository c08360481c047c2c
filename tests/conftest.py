"""Shared fixtures: an app on in-memory SQLite, model factories and a push recorder."""
from datetime import timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from servicebook.config import CONFIGS, TestingConfig
from servicebook.extensions import db
from servicebook.main import create_app
from servicebook.models.booking import Booking
from servicebook.models.enums import BookingStatus, PaymentMethod, ProviderStatus, UserRole
from servicebook.models.provider import Provider, ProviderService
from servicebook.models.service import Service
from servicebook.models.shop import Shop
from servicebook.models.user import User
from servicebook.services.booking_service import BookingService, generate_booking_number
from servicebook.services.push import PushProvider
from servicebook.services.wallet_service import WalletService
from servicebook.utils.money import calculate_platform_fee, quantize_money
from servicebook.utils.time_utils import utcnow


class RecordingPushProvider(PushProvider):
    """Collects pushes instead of delivering them."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, token, title, body, data=None):
        if self.fail:
            raise RuntimeError("push gateway down")
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        return {"status": "sent", "provider": "recording"}


@pytest.fixture
def app(request, tmp_path, monkeypatch):
    config_name = "testing"
    if request.node.get_closest_marker("file_db"):
        # separate sessions need separate connections, which :memory: cannot give
        class FileDbConfig(TestingConfig):
            SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'servicebook.db'}"

        monkeypatch.setitem(CONFIGS, "file_db", FileDbConfig)
        config_name = "file_db"

    app = create_app(config_name)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["servicebook"]


@pytest.fixture
def push(services):
    recorder = RecordingPushProvider()
    services["push"].provider = recorder
    return recorder


@pytest.fixture
def wallet(services):
    return services["wallet"]


@pytest.fixture
def bookings(services):
    return services["bookings"]


@pytest.fixture
def ten_percent(services):
    """Wallet and booking services running at a 10% platform fee."""
    wallet = WalletService(db.session, "0.10")
    booking_service = BookingService(db.session, wallet, services["notifications"], "0.10")
    return wallet, booking_service


class Factory:
    def __init__(self):
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, role=UserRole.CUSTOMER, full_name=None, fcm_token="device-token"):
        n = self._next()
        user = User(
            email=f"user{n}@example.com",
            full_name=full_name or f"User {n}",
            role=role,
            fcm_token=fcm_token,
        )
        db.session.add(user)
        db.session.commit()
        return user

    def shop(self, owner=None, balance=0):
        owner = owner or self.user(role=UserRole.SHOP_OWNER)
        shop = Shop(owner_id=owner.id, name=f"Shop {self._next()}", balance=Decimal(str(balance)))
        db.session.add(shop)
        db.session.commit()
        return shop

    def provider(self, balance=0, shop=None, status=ProviderStatus.APPROVED, user=None):
        user = user or self.user(role=UserRole.PROVIDER)
        provider = Provider(
            user_id=user.id,
            shop_id=shop.id if shop else None,
            display_name=user.full_name,
            status=status,
            balance=Decimal(str(balance)),
        )
        db.session.add(provider)
        db.session.commit()
        return provider

    def service(self, name="Swedish Massage", is_active=True):
        service = Service(name=name, is_active=is_active)
        db.session.add(service)
        db.session.commit()
        return service

    def offer(self, provider, service=None, price_60=500, price_90=None, price_120=None):
        service = service or self.service()
        offer = ProviderService(
            provider_id=provider.id,
            service_id=service.id,
            price_60=Decimal(str(price_60)),
            price_90=Decimal(str(price_90)) if price_90 is not None else None,
            price_120=Decimal(str(price_120)) if price_120 is not None else None,
        )
        db.session.add(offer)
        db.session.commit()
        return offer

    def booking(self, customer=None, provider=None, service=None, status=BookingStatus.PENDING,
                scheduled_at=None, payment_method=PaymentMethod.CASH, amount=500, fee_rate="0.08",
                duration=60):
        customer = customer or self.user()
        provider = provider or self.provider()
        service = service or self.service()
        service_amount = quantize_money(amount)
        fee = calculate_platform_fee(service_amount, fee_rate)
        booking = Booking(
            booking_number=generate_booking_number(),
            customer_id=customer.id,
            provider_id=provider.id,
            service_id=service.id,
            duration=duration,
            scheduled_at=scheduled_at or utcnow() + timedelta(days=1),
            status=status,
            payment_method=payment_method,
            service_amount=service_amount,
            platform_fee=fee,
            provider_earning=service_amount - fee,
            total_amount=service_amount,
            address_text="12 Mango St, Makati",
            created_at=utcnow(),
        )
        db.session.add(booking)
        db.session.commit()
        return booking


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=user.id)
        return {"Authorization": f"Bearer {token}"}
    return _headers
