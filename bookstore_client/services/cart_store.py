import logging
from typing import Dict, Optional, Tuple

from bookstore_client.exceptions import InvalidQuantity, LineNotFound
from bookstore_client.models.book import Book
from bookstore_client.models.cart import CartLine
from bookstore_client.schemas.cart_schemas import CartSummary, SummaryItem

logger = logging.getLogger(__name__)


def _require_whole(qty) -> None:
    # bool is an int subclass, True is not a quantity
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise InvalidQuantity(f"Quantity must be a whole number, got {qty!r}")


def _with_quantity(line: CartLine, qty: int) -> CartLine:
    # model_copy skips validation, rebuild so CartLine rules apply
    return CartLine(**{**line.model_dump(), "quantity": qty})


class CartStore:
    """In-memory cart. One line per book, kept in the order books were added."""

    def __init__(self):
        # dicts keep insertion order, which is the display order
        self._lines: Dict[int, CartLine] = {}

    def add(self, book: Book, qty: int = 1) -> CartLine:
        _require_whole(qty)
        if qty < 1:
            raise InvalidQuantity(f"Quantity must be at least 1, got {qty}")

        existing = self._lines.get(book.id)
        if existing:
            # Increase quantity, keep the price the line was added at
            line = _with_quantity(existing, existing.quantity + qty)
        else:
            line = CartLine(
                book_id=book.id,
                title=book.title,
                unit_price=book.effective_price,
                quantity=qty,
            )

        self._lines[book.id] = line
        logger.debug(f"Cart: book {book.id} now x{line.quantity}")
        return line

    def set_quantity(self, book_id: int, qty: int) -> Optional[CartLine]:
        _require_whole(qty)
        if qty < 0:
            raise InvalidQuantity(f"Quantity cannot be negative, got {qty}")
        if book_id not in self._lines:
            raise LineNotFound(book_id)

        if qty == 0:
            self.remove(book_id)
            return None

        line = _with_quantity(self._lines[book_id], qty)
        self._lines[book_id] = line
        return line

    def remove(self, book_id: int) -> None:
        self._lines.pop(book_id, None)

    def clear(self) -> None:
        self._lines.clear()
        logger.info("Cart cleared")

    def get(self, book_id: int) -> Optional[CartLine]:
        return self._lines.get(book_id)

    def lines(self) -> Tuple[CartLine, ...]:
        return tuple(self._lines.values())

    def total(self) -> int:
        return sum(line.line_total for line in self._lines.values())

    def count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def summary(self) -> CartSummary:
        items = [
            SummaryItem(
                book_id=line.book_id,
                book_title=line.title,
                quantity=line.quantity,
                price=line.unit_price,
                line_total=line.line_total,
            )
            for line in self._lines.values()
        ]
        subtotal = sum(item.line_total for item in items)
        return CartSummary(
            items=items,
            item_count=self.count(),
            subtotal=subtotal,
            total=subtotal,
        )

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, book_id: int) -> bool:
        return book_id in self._lines
