from typing import List

from pydantic import BaseModel


class SummaryItem(BaseModel):
    book_id: int
    book_title: str
    quantity: int
    price: int            # unit price, minor units
    line_total: int       # quantity * price


class CartSummary(BaseModel):
    items: List[SummaryItem]
    item_count: int       # total units across lines
    subtotal: int         # sum of line_total
    total: int
