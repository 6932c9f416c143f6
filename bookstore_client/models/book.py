from typing import Optional

from pydantic import BaseModel, Field


class Book(BaseModel):
    id: int
    title: str

    # Shop Details (minor units, e.g. poisha)
    price: int = Field(ge=0)
    discount_price: Optional[int] = Field(default=None, ge=0)
    offer_price: Optional[int] = Field(default=None, ge=0)

    @property
    def effective_price(self) -> int:
        # offer > discount > regular
        if self.offer_price is not None:
            return self.offer_price
        if self.discount_price is not None:
            return self.discount_price
        return self.price
