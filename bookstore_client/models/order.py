from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from bookstore_client.models.cart import CartLine


class PaymentMethod(str, Enum):
    CASH = "cash"
    BKASH = "bkash"
    NAGAD = "nagad"
    CARD = "card"


class OrderDraft(BaseModel):
    """
    What the user filled in at checkout plus a snapshot of the cart.

    Drafts are immutable; use ``revise`` to build the next attempt.
    """

    model_config = ConfigDict(frozen=True)

    phone_number: str
    address: str
    payment_method: PaymentMethod
    lines: Tuple[CartLine, ...] = ()

    @classmethod
    def from_cart(cls, cart, *, phone_number: str, address: str, payment_method: PaymentMethod) -> "OrderDraft":
        return cls(
            phone_number=phone_number,
            address=address,
            payment_method=payment_method,
            lines=cart.lines(),
        )

    @property
    def total(self) -> int:
        return sum(line.line_total for line in self.lines)

    def revise(self, **changes) -> "OrderDraft":
        data = self.model_dump()
        data.update(changes)
        return OrderDraft(**data)


class OrderSession(BaseModel):
    # Times are monotonic clock readings in seconds, not wall-clock timestamps
    session_token: str
    expires_at: float
    otp_length: int = 6
    attempts_remaining: int = Field(ge=0)
    last_resend_at: Optional[float] = None
    resend_available_at: float = 0.0
