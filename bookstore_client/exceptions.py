class CheckoutError(Exception):
    """Base class for every error raised by the checkout client."""


class ValidationError(CheckoutError):
    """Input rejected on the client side. No network call was made."""


class InvalidQuantity(ValidationError):
    pass


class InvalidPhoneNumber(ValidationError):
    pass


class ResendNotAvailable(ValidationError):
    def __init__(self, seconds_remaining: float):
        self.seconds_remaining = seconds_remaining
        super().__init__(f"Resend available in {seconds_remaining:.0f}s")


class LineNotFound(CheckoutError):
    def __init__(self, book_id: int):
        self.book_id = book_id
        super().__init__(f"Book {book_id} is not in the cart")


class IllegalTransition(CheckoutError):
    """An action was requested in a state that forbids it (caller bug)."""

    def __init__(self, action: str, state):
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} while session is {state.value}")


class SessionExpired(CheckoutError):
    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Cannot {action}: verification session has expired")
