"""Schema validation for the buyer-info and payment-details forms.

Both forms are pydantic models whose validators carry the user-facing
messages. Failures are re-raised as the domain ValidationError with one
message per field, keyed by the field name the client sent.
"""

import re
from datetime import date

import phonenumbers
from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from checkout_engine.domain.exceptions import ValidationError
from checkout_engine.domain.models import BuyerInfo, PaymentDetails

NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-']+$")
CVC_PATTERN = re.compile(r"^\d{3,4}$")
EXPIRY_PATTERN = re.compile(r"^(\d{2})/(\d{2})$")

# brand -> (prefix ranges, accepted lengths)
CARD_BRANDS: dict[str, tuple[tuple[tuple[int, int], ...], tuple[int, ...]]] = {
    "visa": (((4, 4),), (13, 16, 19)),
    "mastercard": (((51, 55), (2221, 2720)), (16,)),
    "american-express": (((34, 34), (37, 37)), (15,)),
    "discover": (((6011, 6011), (644, 649), (65, 65)), (16, 17, 18, 19)),
}


def _check_name(value: str, label: str, min_length: int, max_length: int) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    if len(value) < min_length:
        raise ValueError(f"{label} must be at least {min_length} characters")
    if len(value) > max_length:
        raise ValueError(f"{label} cannot exceed {max_length} characters")
    if not NAME_PATTERN.match(value):
        raise ValueError(
            f"{label} can only contain letters, spaces, hyphens, and apostrophes"
        )
    return value


def detect_card_brand(digits: str) -> str | None:
    for brand, (ranges, _lengths) in CARD_BRANDS.items():
        for low, high in ranges:
            width = len(str(low))
            if len(digits) >= width and low <= int(digits[:width]) <= high:
                return brand
    return None


def luhn_checksum_ok(digits: str) -> bool:
    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def parse_phone(value: str) -> phonenumbers.PhoneNumber:
    """
    Parses an international number and raises ValueError with a message
    suitable for the form when it is not a valid E.164 number.
    """
    if not value:
        raise ValueError("Phone number is required")
    if not value.startswith("+"):
        raise ValueError("Phone number must include country code (e.g., +1 for US)")
    try:
        number = phonenumbers.parse(value, None)
    except phonenumbers.NumberParseException as exc:
        raise ValueError(
            "Invalid phone number. Please enter a valid number with country code."
        ) from exc
    if not phonenumbers.is_valid_number(number):
        country = phonenumbers.region_code_for_number(number) or "unknown country"
        raise ValueError(f"Invalid phone number format for {country}")
    return number


def format_phone(value: str, country_code: str | None = None) -> str | None:
    """Returns the number in E.164 form, or None if it is not a valid number."""
    region = country_code.upper() if country_code else None
    try:
        number = phonenumbers.parse(value, region)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_valid_number(number):
        return None
    return phonenumbers.format_number(number, phonenumbers.PhoneNumberFormat.E164)


class BuyerInfoForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_default=True)

    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    email: str = Field("", alias="email")
    phone: str = Field("", alias="phone")

    @field_validator("first_name")
    @classmethod
    def _first_name(cls, value: str) -> str:
        return _check_name(value, "First name", 2, 50)

    @field_validator("last_name")
    @classmethod
    def _last_name(cls, value: str) -> str:
        return _check_name(value, "Last name", 2, 50)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Email is required")
        if len(value) > 100:
            raise ValueError("Email address is too long")
        try:
            result = validate_email(value, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValueError("Please enter a valid email address") from exc
        return result.normalized

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        number = parse_phone(value.strip())
        return phonenumbers.format_number(number, phonenumbers.PhoneNumberFormat.E164)

    def to_domain(self) -> BuyerInfo:
        number = phonenumbers.parse(self.phone, None)
        return BuyerInfo(
            first_name=self.first_name,
            last_name=self.last_name,
            email=str(self.email),
            phone=self.phone,
            phone_country=phonenumbers.region_code_for_number(number),
        )


class PaymentDetailsForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_default=True)

    cardholder_name: str = Field("", alias="cardholderName")
    card_number: str = Field("", alias="cardNumber")
    expiry: str = Field("", alias="expiryDate")
    cvc: str = Field("", alias="cvv")
    postal_code: str = Field("", alias="zipCode")

    @field_validator("cardholder_name")
    @classmethod
    def _cardholder(cls, value: str) -> str:
        return _check_name(value, "Cardholder name", 3, 100)

    @field_validator("card_number")
    @classmethod
    def _card_number(cls, value: str) -> str:
        digits = re.sub(r"\D", "", value)
        if not digits:
            raise ValueError("Card number is required")
        brand = detect_card_brand(digits)
        if brand is None or len(digits) not in CARD_BRANDS[brand][1]:
            raise ValueError("Invalid credit card number")
        if not luhn_checksum_ok(digits):
            raise ValueError("Invalid credit card number")
        return digits

    @field_validator("expiry")
    @classmethod
    def _expiry(cls, value: str, info: ValidationInfo) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Expiry date is required")
        match = EXPIRY_PATTERN.match(value)
        if not match:
            raise ValueError("Use format MM/YY")
        month, year = int(match.group(1)), int(match.group(2)) + 2000
        if not 1 <= month <= 12:
            raise ValueError("Invalid month")

        today = (info.context or {}).get("today") or date.today()
        if (year, month) < (today.year, today.month):
            raise ValueError("Card has expired")
        return value

    @field_validator("cvc")
    @classmethod
    def _cvc(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("CVV is required")
        if not CVC_PATTERN.match(value):
            raise ValueError("CVV must be 3 or 4 digits")
        return value

    @field_validator("postal_code")
    @classmethod
    def _postal_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Postal/ZIP code is required")
        if len(value) < 3:
            raise ValueError("Postal/ZIP code is too short")
        if len(value) > 10:
            raise ValueError("Postal/ZIP code is too long")
        return value

    def to_domain(self) -> PaymentDetails:
        return PaymentDetails(
            cardholder_name=self.cardholder_name,
            card_number=self.card_number,
            expiry=self.expiry,
            cvc=self.cvc,
            postal_code=self.postal_code,
            card_brand=detect_card_brand(self.card_number) or "unknown",
        )


def _field_errors(exc: PydanticValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "__root__"
        cause = (error.get("ctx") or {}).get("error")
        errors.setdefault(field, str(cause) if cause else error["msg"])
    return errors


def validate_buyer_info(data: dict) -> BuyerInfo:
    try:
        form = BuyerInfoForm.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc)) from exc
    return form.to_domain()


def validate_payment_details(data: dict, today: date | None = None) -> PaymentDetails:
    try:
        form = PaymentDetailsForm.model_validate(data, context={"today": today})
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc)) from exc
    return form.to_domain()
