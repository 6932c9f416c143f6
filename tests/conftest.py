"""
Shared fixtures for the checkout client test suite.
"""

import asyncio
from typing import List, Optional, Tuple

import pytest

from bookstore_client.config import Settings
from bookstore_client.models.book import Book
from bookstore_client.models.order import OrderDraft, PaymentMethod
from bookstore_client.services.cart_store import CartStore
from bookstore_client.services.order_session import OrderSessionMachine
from bookstore_client.services.verification_gateway import (
    Fault,
    FaultKind,
    InitiateOk,
    ResendOk,
    VerificationGateway,
    VerifyOk,
)

PHONE = "+8801712345678"


# ============================================================================
# Test doubles
# ============================================================================


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedGateway(VerificationGateway):
    """
    Gateway double. Each operation pops the next scripted result; when the
    script is empty a default success is returned. Setting ``hold`` makes
    calls wait on the event before answering.
    """

    def __init__(self):
        self.calls: List[Tuple] = []
        self.initiate_results: List = []
        self.verify_results: List = []
        self.resend_results: List = []
        self.hold: Optional[asyncio.Event] = None

    async def _answer(self, queue, default):
        if self.hold is not None:
            await self.hold.wait()
        return queue.pop(0) if queue else default

    async def initiate(self, draft):
        self.calls.append(("initiate", draft))
        return await self._answer(
            self.initiate_results,
            InitiateOk(session_token="abc", expires_in_seconds=600, otp_length=6),
        )

    async def verify(self, session_token, code):
        self.calls.append(("verify", session_token, code))
        return await self._answer(self.verify_results, VerifyOk(order={"order_id": 42}))

    async def resend(self, session_token):
        self.calls.append(("resend", session_token))
        return await self._answer(self.resend_results, ResendOk(expires_in_seconds=600))

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


def wrong_code(attempts_remaining=None) -> Fault:
    return Fault(kind=FaultKind.WRONG_CODE, detail="Wrong code", attempts_remaining=attempts_remaining)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings():
    return Settings(
        API_BASE_URL="http://testserver",
        ENV="local",
        OTP_LENGTH=6,
        DEFAULT_EXPIRES_IN_SECONDS=600,
        RESEND_COOLDOWN_SECONDS=60,
        MAX_VERIFY_ATTEMPTS=3,
        TICK_INTERVAL_SECONDS=0.01,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def books():
    return {
        1: Book(id=1, title="Gitanjali", price=20000),
        2: Book(id=2, title="Pather Panchali", price=15000, discount_price=12000),
        3: Book(id=3, title="Devdas", price=10000, discount_price=9000, offer_price=8000),
    }


@pytest.fixture
def cart(books):
    store = CartStore()
    store.add(books[1])
    store.add(books[2], 2)
    return store


@pytest.fixture
def draft(cart):
    return OrderDraft.from_cart(
        cart,
        phone_number=PHONE,
        address="12 Lake Road, Dhaka",
        payment_method=PaymentMethod.BKASH,
    )


@pytest.fixture
def machine(gateway, cart, clock, settings):
    m = OrderSessionMachine(gateway, cart, clock=clock, settings=settings, auto_tick=False)
    yield m
    m.close()
