from pydantic import BaseModel, ConfigDict, Field


class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    book_id: int
    title: str
    unit_price: int = Field(ge=0)  # minor units
    quantity: int = Field(ge=1)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity
