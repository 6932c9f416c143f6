import asyncio
import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import requests
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaError

from bookstore_client.config import Settings, get_settings
from bookstore_client.models.order import OrderDraft
from bookstore_client.schemas.orders_schemas import (
    ErrorResponse,
    InitiateOrderRequest,
    InitiateOrderResponse,
    OrderBookItem,
    ResendCodeRequest,
    ResendCodeResponse,
    VerifyOrderRequest,
)

logger = logging.getLogger(__name__)

INITIATE_PATH = "/orders/initiate"
VERIFY_PATH = "/orders/verify"
RESEND_PATH = "/orders/resend-code"


class FaultKind(str, Enum):
    NETWORK_UNAVAILABLE = "network_unavailable"
    INVALID_SESSION = "invalid_session"
    WRONG_CODE = "wrong_code"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    SESSION_EXPIRED = "session_expired"
    SERVER_ERROR = "server_error"


class Fault(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FaultKind
    detail: Optional[str] = None
    status_code: Optional[int] = None
    attempts_remaining: Optional[int] = None

    @property
    def retriable(self) -> bool:
        """Only a wrong code with attempts left lets the user try again."""
        if self.kind != FaultKind.WRONG_CODE:
            return False
        return self.attempts_remaining is None or self.attempts_remaining > 0


class InitiateOk(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_token: str
    expires_in_seconds: int
    otp_length: int


class VerifyOk(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: Dict[str, Any]


class ResendOk(BaseModel):
    model_config = ConfigDict(frozen=True)

    expires_in_seconds: int


InitiateResult = Union[InitiateOk, Fault]
VerifyResult = Union[VerifyOk, Fault]
ResendResult = Union[ResendOk, Fault]


class VerificationGateway(ABC):
    """
    Boundary to the order verification backend.

    Implementations return a result or a ``Fault`` and never let transport
    exceptions escape.
    """

    @abstractmethod
    async def initiate(self, draft: OrderDraft) -> InitiateResult:
        ...

    @abstractmethod
    async def verify(self, session_token: str, code: str) -> VerifyResult:
        ...

    @abstractmethod
    async def resend(self, session_token: str) -> ResendResult:
        ...


# ---------------------------------------------------------------------------
# Fault normalisation
# ---------------------------------------------------------------------------

DETAIL_PATTERNS = [
    (
        re.compile(r"too many|attempts? (exhausted|exceeded)|no (more )?attempts|maximum .*attempts", re.I),
        FaultKind.ATTEMPTS_EXHAUSTED,
    ),
    (re.compile(r"(wrong|invalid|incorrect)\s+(otp\s+|pin\s+)?(code|pin|otp)", re.I), FaultKind.WRONG_CODE),
    (re.compile(r"expired", re.I), FaultKind.SESSION_EXPIRED),
    (
        re.compile(
            r"(invalid|unknown|not found).*(session|token)|(session|token).*(invalid|unknown|not found)",
            re.I,
        ),
        FaultKind.INVALID_SESSION,
    ),
]

ATTEMPTS_IN_DETAIL = re.compile(r"(\d+)\s+attempts?\s+(remaining|left)", re.I)


def classify_detail(detail: Optional[str]) -> FaultKind:
    if not detail:
        return FaultKind.SERVER_ERROR
    for pattern, kind in DETAIL_PATTERNS:
        if pattern.search(detail):
            return kind
    return FaultKind.SERVER_ERROR


def fault_from_response(status_code: int, body: Any) -> Fault:
    detail = None
    attempts_remaining = None

    if isinstance(body, dict):
        try:
            error = ErrorResponse(**body)
        except SchemaError:
            error = ErrorResponse()
        if error.detail is not None:
            detail = error.detail if isinstance(error.detail, str) else str(error.detail)
        attempts_remaining = error.attempts_remaining

    if attempts_remaining is None and detail:
        match = ATTEMPTS_IN_DETAIL.search(detail)
        if match:
            attempts_remaining = int(match.group(1))

    kind = classify_detail(detail)
    if kind == FaultKind.WRONG_CODE and attempts_remaining == 0:
        kind = FaultKind.ATTEMPTS_EXHAUSTED

    return Fault(
        kind=kind,
        detail=detail,
        status_code=status_code,
        attempts_remaining=attempts_remaining,
    )


def mask_token(token: str) -> str:
    if len(token) <= 6:
        return "***"
    return f"{token[:3]}***{token[-3:]}"


# ---------------------------------------------------------------------------
# HTTP adapter
# ---------------------------------------------------------------------------

class HttpVerificationGateway(VerificationGateway):
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        session=None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.default_expires_in = settings.DEFAULT_EXPIRES_IN_SECONDS
        self.default_otp_length = settings.OTP_LENGTH
        # anything with a requests-style post(url, json=..., timeout=...)
        self._session = session if session is not None else requests.Session()

    async def initiate(self, draft: OrderDraft) -> InitiateResult:
        payload = InitiateOrderRequest(
            phone_number=draft.phone_number,
            address=draft.address,
            payment_method=draft.payment_method.value,
            books=[
                OrderBookItem(
                    id=line.book_id,
                    title=line.title,
                    price=line.unit_price / 100,
                    quantity=line.quantity,
                )
                for line in draft.lines
            ],
        )
        body, fault = await asyncio.to_thread(self._post, INITIATE_PATH, payload.model_dump())
        if fault:
            return fault

        try:
            data = InitiateOrderResponse(**body)
        except (SchemaError, TypeError):
            logger.error(f"Malformed initiate response: {body!r}")
            return Fault(kind=FaultKind.SERVER_ERROR, detail="Malformed initiate response")

        logger.info(f"Order verification initiated, session {mask_token(data.session_token)}")
        return InitiateOk(
            session_token=data.session_token,
            expires_in_seconds=self._or_default(data.expires_in_seconds, self.default_expires_in),
            otp_length=self._or_default(data.otp_length, self.default_otp_length),
        )

    async def verify(self, session_token: str, code: str) -> VerifyResult:
        payload = VerifyOrderRequest(session_token=session_token, pin_code=code)
        body, fault = await asyncio.to_thread(self._post, VERIFY_PATH, payload.model_dump())
        if fault:
            return fault

        if not isinstance(body, dict):
            logger.error(f"Malformed verify response: {body!r}")
            return Fault(kind=FaultKind.SERVER_ERROR, detail="Malformed verify response")

        logger.info(f"Order confirmed for session {mask_token(session_token)}")
        return VerifyOk(order=body)

    async def resend(self, session_token: str) -> ResendResult:
        payload = ResendCodeRequest(session_token=session_token)
        body, fault = await asyncio.to_thread(self._post, RESEND_PATH, payload.model_dump())
        if fault:
            return fault

        try:
            data = ResendCodeResponse(**(body or {}))
        except (SchemaError, TypeError):
            logger.error(f"Malformed resend response: {body!r}")
            return Fault(kind=FaultKind.SERVER_ERROR, detail="Malformed resend response")

        logger.info(f"Verification code resent for session {mask_token(session_token)}")
        return ResendOk(expires_in_seconds=self._or_default(data.expires_in_seconds, self.default_expires_in))

    @staticmethod
    def _or_default(value: Optional[int], default: int) -> int:
        # 0 is a real answer from the server, only a missing field falls back
        return default if value is None else value

    def _post(self, path: str, payload: Dict[str, Any]) -> Tuple[Any, Optional[Fault]]:
        url = f"{self.base_url}{path}"

        try:
            response = self._session.post(url, json=payload, timeout=self.timeout)
        except requests.Timeout:
            logger.warning(f"Timed out calling {path}")
            return None, Fault(kind=FaultKind.NETWORK_UNAVAILABLE, detail="Request timed out")
        except requests.RequestException as e:
            logger.warning(f"Network error calling {path}: {e}")
            return None, Fault(kind=FaultKind.NETWORK_UNAVAILABLE, detail=str(e))

        try:
            body = response.json()
        except ValueError:
            body = None

        if not 200 <= response.status_code < 300:
            fault = fault_from_response(response.status_code, body)
            logger.warning(
                f"{path} failed ({response.status_code}): {fault.kind.value} {fault.detail or ''}".rstrip()
            )
            return None, fault

        if body is None:
            body = {}
        return body, None
