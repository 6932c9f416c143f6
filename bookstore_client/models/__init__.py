from bookstore_client.models.book import Book
from bookstore_client.models.cart import CartLine
from bookstore_client.models.order import OrderDraft, OrderSession, PaymentMethod
