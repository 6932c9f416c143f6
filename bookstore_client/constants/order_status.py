from enum import Enum


class SessionState(str, Enum):
    DRAFT = "draft"
    SUBMITTING = "submitting"
    AWAITING_VERIFICATION = "awaiting_verification"
    VERIFYING = "verifying"
    RESENDING = "resending"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"


ALLOWED_TRANSITIONS = {
    SessionState.DRAFT: [SessionState.SUBMITTING],
    SessionState.SUBMITTING: [SessionState.AWAITING_VERIFICATION, SessionState.FAILED],
    SessionState.AWAITING_VERIFICATION: [
        SessionState.VERIFYING,
        SessionState.RESENDING,
        SessionState.EXPIRED,
    ],
    SessionState.VERIFYING: [
        SessionState.VERIFIED,
        SessionState.AWAITING_VERIFICATION,
        SessionState.FAILED,
        SessionState.EXPIRED,
    ],
    SessionState.RESENDING: [SessionState.AWAITING_VERIFICATION, SessionState.EXPIRED],
    SessionState.VERIFIED: [],
    SessionState.FAILED: [],
    SessionState.EXPIRED: [],
}

TERMINAL_STATES = frozenset(
    state for state, targets in ALLOWED_TRANSITIONS.items() if not targets
)

IN_FLIGHT_STATES = frozenset(
    {SessionState.SUBMITTING, SessionState.VERIFYING, SessionState.RESENDING}
)
