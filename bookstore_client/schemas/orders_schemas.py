from typing import Any, List, Optional

from pydantic import BaseModel, Field


class OrderBookItem(BaseModel):
    id: int
    title: str
    price: float          # major units
    quantity: int


class InitiateOrderRequest(BaseModel):
    phone_number: str
    address: str
    payment_method: str
    books: List[OrderBookItem]


class InitiateOrderResponse(BaseModel):
    session_token: str
    expires_in_seconds: Optional[int] = Field(default=None, ge=0)
    otp_length: Optional[int] = Field(default=None, ge=1)


class VerifyOrderRequest(BaseModel):
    session_token: str
    pin_code: str


class ResendCodeRequest(BaseModel):
    session_token: str


class ResendCodeResponse(BaseModel):
    expires_in_seconds: Optional[int] = Field(default=None, ge=0)


class ErrorResponse(BaseModel):
    detail: Any = None
    attempts_remaining: Optional[int] = None
