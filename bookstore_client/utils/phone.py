import re

from bookstore_client.exceptions import InvalidPhoneNumber

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")
SEPARATORS = re.compile(r"[\s\-().]")


def normalize_phone(raw: str, default_country_code: str = "880") -> str:
    """
    Normalize a user-entered phone number to E.164 (``+<country><number>``).

    Accepted forms, for the default country code 880:
        +8801712345678, 8801712345678, 008801712345678, 01712345678
    """
    if not raw or not raw.strip():
        raise InvalidPhoneNumber("Phone number is required")

    number = SEPARATORS.sub("", raw.strip())

    if number.startswith("00"):
        number = "+" + number[2:]
    elif number.startswith("+"):
        pass
    elif number.startswith(default_country_code):
        number = "+" + number
    elif number.startswith("0"):
        # national trunk prefix
        number = f"+{default_country_code}{number[1:]}"
    else:
        number = f"+{default_country_code}{number}"

    if not E164_PATTERN.match(number):
        raise InvalidPhoneNumber(f"Invalid phone number: {raw}")

    return number


def is_valid_phone(raw: str, default_country_code: str = "880") -> bool:
    try:
        normalize_phone(raw, default_country_code)
    except InvalidPhoneNumber:
        return False
    return True


def mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return phone
    return "*" * (len(phone) - 4) + phone[-4:]
