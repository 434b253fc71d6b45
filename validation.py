"""
Field validation rules for registration, profile and reservation input.

Every validator returns a list of human-readable error messages; an empty
list means the value is valid. Use combine() to merge several results.
"""
import re
from datetime import datetime
from typing import List, Optional

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
PHONE_RE = re.compile(r"^[0-9+\-\s()]+$")
SPECIAL_CHARS_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

DINERS_PREFIXES = ("300", "301", "302", "303", "36", "38")
MASTERCARD_PREFIXES = ("51", "52", "53", "54", "55")
VISA_PREFIXES = ("4539", "4556", "4916", "4532", "4929", "4485", "4716")

GENDERS = ("M", "F", "male", "female")
USER_TYPES = ("tourist", "owner", "admin")


def combine(*results: List[str]) -> List[str]:
    errors: List[str] = []
    for r in results:
        errors.extend(r)
    return errors


def validate_email(email: Optional[str]) -> List[str]:
    if not email or not email.strip():
        return ["Email is required"]
    errors = []
    if not EMAIL_RE.match(email):
        errors.append("Invalid email format")
    if len(email) > 255:
        errors.append("Email must not exceed 255 characters")
    return errors


def validate_username(username: Optional[str]) -> List[str]:
    if not username or not username.strip():
        return ["Username is required"]
    errors = []
    if len(username) < 3:
        errors.append("Username must be at least 3 characters long")
    if len(username) > 50:
        errors.append("Username must not exceed 50 characters")
    if not USERNAME_RE.match(username):
        errors.append("Username can only contain letters, numbers, hyphens, and underscores")
    return errors


def validate_password(password: Optional[str]) -> List[str]:
    """
    Password rules:
    - 6-10 characters, beginning with a letter
    - at least one uppercase and three lowercase letters
    - at least one digit and one special character
    """
    if not password:
        return ["Password is required"]
    errors = []
    if len(password) < 6:
        errors.append("Password must be at least 6 characters long")
    if len(password) > 10:
        errors.append("Password must not exceed 10 characters")
    if not re.match(r"^[a-zA-Z]", password):
        errors.append("Password must begin with a letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if len(re.findall(r"[a-z]", password)) < 3:
        errors.append("Password must contain at least three lowercase letters")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one digit")
    if not SPECIAL_CHARS_RE.search(password):
        errors.append("Password must contain at least one special character")
    return errors


def validate_phone(phone: Optional[str]) -> List[str]:
    if not phone or not phone.strip():
        return ["Phone number is required"]
    errors = []
    if not PHONE_RE.match(phone):
        errors.append("Phone number contains invalid characters")
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 7 or len(digits) > 15:
        errors.append("Phone number must contain between 7 and 15 digits")
    return errors


def validate_required_string(value: Optional[str], field_name: str, min_length: int = 1, max_length: int = 255) -> List[str]:
    if not value or not value.strip():
        return [f"{field_name} is required"]
    errors = []
    if len(value) < min_length:
        errors.append(f"{field_name} must be at least {min_length} characters long")
    if len(value) > max_length:
        errors.append(f"{field_name} must not exceed {max_length} characters")
    return errors


def clean_card_number(card_number: str) -> str:
    return re.sub(r"[\s\-]", "", card_number or "")


def detect_card_type(card_number: Optional[str]) -> Optional[str]:
    """Return 'diners', 'mastercard', 'visa' or None."""
    card = clean_card_number(card_number or "")
    if not card.isdigit():
        return None
    if len(card) == 15 and card.startswith(DINERS_PREFIXES):
        return "diners"
    if len(card) == 16:
        if card.startswith(MASTERCARD_PREFIXES):
            return "mastercard"
        if card.startswith(VISA_PREFIXES):
            return "visa"
    return None


def validate_credit_card(card_number: Optional[str]) -> List[str]:
    if not card_number or not card_number.strip():
        return ["Credit card number is required"]
    if not clean_card_number(card_number).isdigit():
        return ["Credit card number must contain only digits"]
    if detect_card_type(card_number) is None:
        return [
            "Invalid credit card. Must be Diners (15 digits, starts with 300-303/36/38), "
            "MasterCard (16 digits, starts with 51-55), or Visa (16 digits, starts with "
            "4539/4556/4916/4532/4929/4485/4716)"
        ]
    return []


def validate_number_range(value, field_name: str, min_value: float, max_value: float) -> List[str]:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return [f"{field_name} must be a valid number"]
    errors = []
    if value < min_value:
        errors.append(f"{field_name} must be at least {min_value}")
    if value > max_value:
        errors.append(f"{field_name} must not exceed {max_value}")
    return errors


def validate_date_range(start: Optional[datetime], end: Optional[datetime]) -> List[str]:
    errors = []
    if start is None:
        errors.append("Start date is not valid")
    if end is None:
        errors.append("End date is not valid")
    if errors:
        return errors
    if start >= end:
        errors.append("End date must be after start date")
    return errors


def validate_gender(gender: Optional[str]) -> List[str]:
    if not gender or not gender.strip():
        return ["Gender is required"]
    if gender not in GENDERS:
        return ["Gender must be M, F, male, or female"]
    return []


def validate_user_type(user_type: Optional[str]) -> List[str]:
    if not user_type or not user_type.strip():
        return ["User type is required"]
    if user_type not in USER_TYPES:
        return ["User type must be tourist, owner, or admin"]
    return []


def normalize_gender(gender: str) -> str:
    return "M" if gender.strip().lower() in ("m", "male") else "F"


def sanitize_string(value: Optional[str]) -> str:
    """Trim and strip script/iframe blocks, javascript: URLs and inline handlers."""
    if not value:
        return ""
    s = value.strip()
    s = re.sub(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", "", s, flags=re.IGNORECASE)
    s = re.sub(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", "", s, flags=re.IGNORECASE)
    s = re.sub(r"javascript:", "", s, flags=re.IGNORECASE)
    s = re.sub(r"on\w+\s*=", "", s, flags=re.IGNORECASE)
    return s
