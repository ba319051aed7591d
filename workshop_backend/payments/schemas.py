"""
Corps de requête du tunnel de paiement.
Champs inconnus refusés (extra="forbid"); les erreurs pydantic sont traduites
en ValidationError métier avec les messages attendus par le front.
"""
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from workshop_backend.errors import ValidationError

T = TypeVar("T", bound=BaseModel)


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class CreateOrderRequest(_Strict):
    userName: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    workshopId: str = Field(min_length=1)
    workshopTitle: str = Field(min_length=1)
    organization: str = Field(min_length=1)
    amount: float = Field(allow_inf_nan=False)

    @field_validator("amount")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount must be greater than 0")
        return v


class VerifyPaymentRequest(_Strict):
    registrationId: str = Field(min_length=1)
    orderId: str = Field(min_length=1)
    paymentId: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class PaymentFailureRequest(_Strict):
    registrationId: str = Field(min_length=1)
    orderId: Optional[str] = None
    paymentId: Optional[str] = None
    error: Optional[Any] = None


class RefundRequest(_Strict):
    amount: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    reason: Optional[str] = None


MISSING_MESSAGES = {
    CreateOrderRequest: "All fields are required",
    VerifyPaymentRequest: "Missing required payment verification data",
    PaymentFailureRequest: "Registration ID is required",
}

def _blank_required_fields(model: Type[BaseModel], body: dict) -> list:
    """Champs requis absents, null ou vides (après strip)."""
    blank = []
    for name, field in model.model_fields.items():
        if not field.is_required():
            continue
        value = body.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            blank.append(name)
    return blank

# module workshop_backend.payments.schemas
def parse_body(model: Type[T], body: Any) -> T:
    """
    Valide un corps JSON contre le schéma.
    - champ manquant ou vide -> message "requis" propre au schéma
    - champ inconnu -> "Unknown field: <nom>"
    - autre erreur -> message du validateur
    """
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body")
    blank = _blank_required_fields(model, body)
    if blank:
        raise ValidationError(MISSING_MESSAGES.get(model, "Missing required fields"), detail=", ".join(blank))
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        errors = e.errors()
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in errors]
        for err in errors:
            kind = err.get("type", "")
            if kind == "missing" or kind == "string_too_short":
                raise ValidationError(MISSING_MESSAGES.get(model, "Missing required fields"), detail=", ".join(fields)) from None
        for err, field in zip(errors, fields):
            if err.get("type") == "extra_forbidden":
                raise ValidationError(f"Unknown field: {field}") from None
        first = errors[0] if errors else {}
        msg = str(first.get("msg") or "Invalid request body")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        raise ValidationError(msg, detail=", ".join(fields)) from None
