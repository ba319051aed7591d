import re

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{10,}$")

def validate_email(v: str) -> str:
    if not isinstance(v, str) or not EMAIL_RE.match(v.strip()):
        raise ValueError("Valid email is required")
    return v.strip()

def validate_phone(v: str) -> str:
    if not isinstance(v, str) or not PHONE_RE.match(v.strip()):
        raise ValueError("Valid phone number is required")
    return v.strip()

def validate_rating(v, low: float = 0, high: float = 5) -> float:
    try:
        value = float(v)
    except (TypeError, ValueError):
        raise ValueError(f"Rating must be between {low:g} and {high:g}") from None
    if value < low or value > high:
        raise ValueError(f"Rating must be between {low:g} and {high:g}")
    return value

def validate_non_empty_list(v, label: str) -> list:
    if not isinstance(v, list) or not v:
        raise ValueError(f"At least one {label} is required")
    return v
