import logging
import re
from typing import Any, Callable, Dict, List, Optional

from bookstore_client.config import Settings, get_settings
from bookstore_client.constants.order_status import (
    ALLOWED_TRANSITIONS,
    IN_FLIGHT_STATES,
    TERMINAL_STATES,
    SessionState,
)
from bookstore_client.exceptions import (
    CheckoutError,
    IllegalTransition,
    ResendNotAvailable,
    SessionExpired,
    ValidationError,
)
from bookstore_client.models.order import OrderDraft, OrderSession
from bookstore_client.services.cart_store import CartStore
from bookstore_client.services.countdown import Clock, Countdown, Ticker, monotonic_clock
from bookstore_client.services.verification_gateway import (
    Fault,
    FaultKind,
    InitiateResult,
    ResendResult,
    VerificationGateway,
    VerifyOk,
    VerifyResult,
    mask_token,
)
from bookstore_client.utils.phone import mask_phone, normalize_phone

logger = logging.getLogger(__name__)

DIGIT = re.compile(r"[0-9]")
NUMERIC_CODE = re.compile(r"[0-9]+")

StateListener = Callable[[SessionState, SessionState], None]


class OrderSessionMachine:
    """
    Drives one checkout attempt from draft to a confirmed (or failed) order.

    Draft -> Submitting -> AwaitingVerification -> Verifying -> Verified
    with Failed and Expired as the other terminal states, and a
    Resending detour that returns to AwaitingVerification.

    Every gateway call records the generation it was issued under.
    ``restart`` and ``close`` bump the generation, so a response that
    arrives for an abandoned attempt is dropped instead of applied.
    """

    def __init__(
        self,
        gateway: VerificationGateway,
        cart: CartStore,
        *,
        clock: Clock = monotonic_clock,
        settings: Optional[Settings] = None,
        strict: Optional[bool] = None,
        auto_tick: bool = True,
    ):
        settings = settings or get_settings()

        self._gateway = gateway
        self._cart = cart
        self._clock = clock
        self._strict = settings.strict_transitions if strict is None else strict

        self._country_code = settings.DEFAULT_COUNTRY_CODE
        self._resend_cooldown = settings.RESEND_COOLDOWN_SECONDS
        self._max_attempts = settings.MAX_VERIFY_ATTEMPTS

        self._ticker = Ticker(self.tick, settings.TICK_INTERVAL_SECONDS) if auto_tick else None

        self._state = SessionState.DRAFT
        self._generation = 0
        self._session: Optional[OrderSession] = None
        self._draft: Optional[OrderDraft] = None
        self._order: Optional[Dict[str, Any]] = None
        self._digits: List[str] = []
        self._listeners: List[StateListener] = []

        self.failure_reason: Optional[FaultKind] = None
        self.last_fault: Optional[Fault] = None
        self.last_error: Optional[CheckoutError] = None

    # ------------------------------------------------------------------
    # Read-only view for the UI
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[OrderSession]:
        return self._session

    @property
    def draft(self) -> Optional[OrderDraft]:
        return self._draft

    @property
    def order(self) -> Optional[Dict[str, Any]]:
        return self._order

    @property
    def is_busy(self) -> bool:
        return self._state in IN_FLIGHT_STATES

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def attempts_remaining(self) -> Optional[int]:
        return self._session.attempts_remaining if self._session else None

    @property
    def seconds_until_expiry(self) -> Optional[float]:
        if not self._session:
            return None
        return self._countdown(self._session.expires_at).remaining()

    @property
    def resend_countdown(self) -> float:
        if not self._session:
            return 0.0
        return self._countdown(self._session.resend_available_at).remaining()

    @property
    def can_resend(self) -> bool:
        return self._state == SessionState.AWAITING_VERIFICATION and self.resend_countdown == 0

    @property
    def pending_code(self) -> str:
        return "".join(self._digits)

    @property
    def code_complete(self) -> bool:
        return bool(self._digits) and all(self._digits)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------

    async def submit(self, draft: OrderDraft) -> Optional[InitiateResult]:
        if self._state != SessionState.DRAFT:
            return self._illegal("submit")

        draft = self._validated(draft)
        self._draft = draft
        self.last_error = None
        self.last_fault = None
        self.failure_reason = None

        self._transition(SessionState.SUBMITTING)
        generation = self._generation
        logger.info(f"Submitting order for {mask_phone(draft.phone_number)}, total {draft.total}")

        result = await self._gateway.initiate(draft)
        if generation != self._generation:
            return self._stale("initiate")

        if isinstance(result, Fault):
            self._fail(result)
            return result

        now = self._clock()
        self._session = OrderSession(
            session_token=result.session_token,
            expires_at=now + result.expires_in_seconds,
            otp_length=result.otp_length,
            attempts_remaining=self._max_attempts,
            resend_available_at=now + self._resend_cooldown,
        )
        self._reset_digits()
        self._transition(SessionState.AWAITING_VERIFICATION)
        logger.info(
            f"Awaiting verification for session {mask_token(result.session_token)}, "
            f"expires in {result.expires_in_seconds}s"
        )
        return result

    def enter_digit(self, index: int, value: str) -> Optional[bool]:
        """Fill (or clear, with "") one slot of the code. Returns whether every slot is filled."""
        if self._state != SessionState.AWAITING_VERIFICATION:
            return self._illegal("enter a digit")

        if not 0 <= index < len(self._digits):
            self._invalid(ValidationError(f"Digit index {index} out of range"))
        if value != "" and not DIGIT.fullmatch(value):
            self._invalid(ValidationError(f"Not a digit: {value!r}"))

        self._digits[index] = value
        return self.code_complete

    async def verify(self, code: Optional[str] = None) -> Optional[VerifyResult]:
        if self._state == SessionState.EXPIRED:
            raise SessionExpired("verify")
        if self._state != SessionState.AWAITING_VERIFICATION:
            return self._illegal("verify")
        if self._expire_if_due():
            raise SessionExpired("verify")

        session = self._session
        code = self.pending_code if code is None else code
        if len(code) != session.otp_length or not NUMERIC_CODE.fullmatch(code):
            self._invalid(ValidationError(f"Code must be {session.otp_length} digits"))

        self.last_error = None
        self._transition(SessionState.VERIFYING)
        generation = self._generation

        result = await self._gateway.verify(session.session_token, code)
        if generation != self._generation:
            return self._stale("verify")

        if isinstance(result, VerifyOk):
            self._order = result.order
            self.last_fault = None
            self._session = None
            self._digits = []
            # listeners rendering Verified must already see the emptied cart
            self._cart.clear()
            self._transition(SessionState.VERIFIED)
            logger.info(f"Order verified: {result.order.get('id', result.order.get('order_id'))}")
            return result

        if result.kind == FaultKind.WRONG_CODE:
            if result.attempts_remaining is None:
                result = result.model_copy(
                    update={"attempts_remaining": max(0, session.attempts_remaining - 1)}
                )
            session.attempts_remaining = max(0, result.attempts_remaining)
            self.last_fault = result

            if result.retriable:
                logger.warning(f"Wrong code, {session.attempts_remaining} attempts remaining")
                self._reset_digits()
                if self._deadline_passed():
                    self._expire()
                else:
                    self._transition(SessionState.AWAITING_VERIFICATION)
                return result

            result = result.model_copy(
                update={"kind": FaultKind.ATTEMPTS_EXHAUSTED, "attempts_remaining": 0}
            )

        self._fail(result)
        return result

    async def resend(self) -> Optional[ResendResult]:
        if self._state == SessionState.EXPIRED:
            raise SessionExpired("resend")
        if self._state != SessionState.AWAITING_VERIFICATION:
            return self._illegal("resend")
        if self._expire_if_due():
            raise SessionExpired("resend")

        wait = self.resend_countdown
        if wait > 0:
            self._invalid(ResendNotAvailable(wait))

        session = self._session
        self.last_error = None
        self._transition(SessionState.RESENDING)
        generation = self._generation

        result = await self._gateway.resend(session.session_token)
        if generation != self._generation:
            return self._stale("resend")

        if isinstance(result, Fault):
            # the existing code is still valid, keep the session as it was
            self.last_fault = result
            logger.warning(f"Resend failed: {result.kind.value}")
            if self._deadline_passed():
                self._expire()
            else:
                self._transition(SessionState.AWAITING_VERIFICATION)
            return result

        now = self._clock()
        session.expires_at = now + result.expires_in_seconds
        session.last_resend_at = now
        session.resend_available_at = now + self._resend_cooldown
        self.last_fault = None
        self._reset_digits()
        self._transition(SessionState.AWAITING_VERIFICATION)
        logger.info(f"Code resent, session now expires in {result.expires_in_seconds}s")
        return result

    # ------------------------------------------------------------------
    # Timer and lifecycle
    # ------------------------------------------------------------------

    def tick(self) -> SessionState:
        """
        Expiry check run by the countdown ticker.

        Only acts in AwaitingVerification: a verify or resend already on
        the wire is allowed to resolve first.
        """
        if self._state == SessionState.AWAITING_VERIFICATION:
            self._expire_if_due()
        return self._state

    def restart(self) -> None:
        """Abandon the current attempt and go back to Draft. The last draft is kept."""
        self._generation += 1
        self._stop_ticker()
        self._session = None
        self._order = None
        self._digits = []
        self.failure_reason = None
        self.last_fault = None
        self.last_error = None
        logger.info(f"Checkout restarted from {self._state.value}")
        self._set_state(SessionState.DRAFT)

    def close(self) -> None:
        """Release the ticker and ignore any response still in flight."""
        self._generation += 1
        self._stop_ticker()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validated(self, draft: OrderDraft) -> OrderDraft:
        try:
            phone = normalize_phone(draft.phone_number, self._country_code)
        except ValidationError as e:
            self._invalid(e)
        if not draft.lines:
            self._invalid(ValidationError("Cart is empty"))
        if not draft.address.strip():
            self._invalid(ValidationError("Delivery address is required"))

        if phone != draft.phone_number:
            draft = draft.revise(phone_number=phone)
        return draft

    def _invalid(self, error: ValidationError):
        self.last_error = error
        raise error

    def _illegal(self, action: str):
        error = IllegalTransition(action, self._state)
        if self._strict:
            raise error
        logger.warning(f"Ignored illegal action: {error}")
        return None

    def _stale(self, action: str):
        logger.debug(f"Dropping late {action} response for an abandoned session")
        return None

    def _countdown(self, deadline: float) -> Countdown:
        return Countdown(self._clock, deadline)

    def _deadline_passed(self) -> bool:
        return self._session is not None and self._countdown(self._session.expires_at).reached()

    def _expire_if_due(self) -> bool:
        if self._deadline_passed():
            self._expire()
            return True
        return False

    def _expire(self):
        logger.info(f"Verification session {mask_token(self._session.session_token)} expired")
        self._session = None
        self._digits = []
        self._transition(SessionState.EXPIRED)

    def _fail(self, fault: Fault):
        self.last_fault = fault
        self.failure_reason = fault.kind
        self._session = None
        self._digits = []
        logger.error(f"Checkout failed: {fault.kind.value} {fault.detail or ''}".rstrip())
        self._transition(SessionState.FAILED)

    def _reset_digits(self):
        self._digits = [""] * self._session.otp_length

    def _transition(self, target: SessionState):
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise IllegalTransition(f"move to {target.value}", self._state)
        self._set_state(target)

    def _set_state(self, target: SessionState):
        previous = self._state
        self._state = target

        if target == SessionState.AWAITING_VERIFICATION:
            self._start_ticker()
        else:
            self._stop_ticker()

        for listener in list(self._listeners):
            listener(previous, target)

    def _start_ticker(self):
        if self._ticker is not None:
            self._ticker.start()

    def _stop_ticker(self):
        if self._ticker is not None:
            self._ticker.stop()
