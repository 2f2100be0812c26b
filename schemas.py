import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import ObligationKind
from periods import parse_record_date


class TransactionRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    member_id: Optional[str] = None
    guest_id: Optional[str] = None
    type: Optional[str] = None
    amount: Decimal = Decimal("0")
    date: Optional[dt.date] = None
    description: Optional[str] = None

    @field_validator("id", "member_id", "guest_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        if value is None or value == "":
            return Decimal("0")
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return Decimal("0")
        return amount if amount.is_finite() else Decimal("0")

    @field_validator("date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Optional[dt.date]:
        return parse_record_date(value)

    def owner(self, owner_key: str) -> Optional[str]:
        value = getattr(self, owner_key, None)
        if value is None and self.model_extra:
            value = self.model_extra.get(owner_key)
        return None if value is None else str(value)


class RecurringObligation(BaseModel):
    owner_id: str
    amount_per_month: Decimal = Field(..., ge=0)
    is_active: bool = True
    kind: ObligationKind


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class SignupIn(LoginIn):
    name: Optional[str] = Field(default=None, max_length=200)
    password: str = Field(..., min_length=6)


class GoogleLoginIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id_token: str = Field(..., alias="idToken", min_length=1)


class AuthOut(BaseModel):
    token: str
    user: dict[str, Any]


class _CamelPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CheckoutIn(_CamelPayload):
    member_id: str = Field(..., alias="memberId")
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    success_path: Optional[str] = Field(default=None, alias="successPath")
    cancel_path: Optional[str] = Field(default=None, alias="cancelPath")


class GuestCheckoutIn(_CamelPayload):
    guest_id: str = Field(..., alias="guestId")
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    success_path: Optional[str] = Field(default=None, alias="successPath")
    cancel_path: Optional[str] = Field(default=None, alias="cancelPath")


class SubscriptionCheckoutIn(_CamelPayload):
    member_id: str = Field(..., alias="memberId")
    payment_type: str = Field(..., alias="paymentType")
    amount_per_month: Decimal = Field(..., gt=0, alias="amountPerMonth")
    payoff_total: Optional[Decimal] = Field(default=None, gt=0, alias="payoffTotal")
    success_path: Optional[str] = Field(default=None, alias="successPath")
    cancel_path: Optional[str] = Field(default=None, alias="cancelPath")


class GuestSubscriptionCheckoutIn(_CamelPayload):
    guest_id: str = Field(..., alias="guestId")
    payment_type: str = Field(..., alias="paymentType")
    amount_per_month: Decimal = Field(..., gt=0, alias="amountPerMonth")
    payoff_total: Optional[Decimal] = Field(default=None, gt=0, alias="payoffTotal")
    success_path: Optional[str] = Field(default=None, alias="successPath")
    cancel_path: Optional[str] = Field(default=None, alias="cancelPath")


class SaveCardCheckoutIn(_CamelPayload):
    member_id: str = Field(..., alias="memberId")
    success_path: Optional[str] = Field(default=None, alias="successPath")
    cancel_path: Optional[str] = Field(default=None, alias="cancelPath")


class BulkActivationIn(_CamelPayload):
    member_ids: list[str] = Field(..., min_length=1, alias="memberIds")
    amount_per_month: Decimal = Field(..., gt=0, alias="amountPerMonth")


class FilterIn(BaseModel):
    where: dict[str, Any] = Field(default_factory=dict)
    sort: Optional[str] = None
    limit: Optional[int] = None
    page: Optional[int] = Field(default=None, ge=1)


class EmailSchedule(BaseModel):
    """A saved monthly statement mailing, normalized from its stored record."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    enabled: bool = False
    day_of_month: int = Field(default=1, ge=1, le=31)
    hour: int = Field(default=9, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    time_zone: str = "America/New_York"
    send_to: str = "all"
    selected_member_ids: list[str] = Field(default_factory=list)
    subject: str = "Monthly Statement"
    body: str = "Dear {member_name},\n\nYour balance is {balance}.\n\nThank you."
    attach_invoice: bool = False
    last_sent_month: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_blanks(cls, data: Any) -> Any:
        # missing, null and empty values all fall back to the defaults
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None and v != ""}
        return data

    @field_validator("id", "last_sent_month", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return str(value)

    @field_validator("send_to", mode="before")
    @classmethod
    def _send_to(cls, value: Any) -> str:
        return "selected" if value == "selected" else "all"

    @field_validator("selected_member_ids", mode="before")
    @classmethod
    def _selected_ids(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(v) for v in value]
