import re
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

MIN_RENTER_NAME_LENGTH = 3
MAX_RENTER_NAME_LENGTH = 100
MIN_PHONE_LENGTH = 9
MAX_PHONE_LENGTH = 13
MAX_REGULAR_HOURS = 24
MAX_OVERTIME_HOURS = 16
MAX_EXCAVATORS_PER_RENTAL = 10


def normalize_phone_number(raw: str | None) -> str:
    cleaned = re.sub(r"\D", "", raw or "")
    if cleaned.startswith("62"):
        return "0" + cleaned[2:]
    return cleaned


def validate_phone_number(raw: str | None) -> str:
    normalized = normalize_phone_number(raw)
    if not (MIN_PHONE_LENGTH <= len(normalized) <= MAX_PHONE_LENGTH) or not normalized.startswith("0"):
        raise ValueError("Phone number must start with 0 (or 62) and have 9 to 13 digits.")
    return normalized


def _blank_email_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value.strip() if isinstance(value, str) else value


class RentalItemDraft(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    excavatorID: Optional[int] = None
    excavatorName: Optional[str] = None
    brand: Optional[str] = None
    type: Optional[str] = None
    operatorName: Optional[str] = None
    regularRatePerHour: Optional[int] = Field(None, ge=0)
    overtimeRatePerHour: Optional[int] = Field(None, ge=0)
    regularHours: float = Field(8, ge=0, le=MAX_REGULAR_HOURS)
    overtimeHours: float = Field(0, ge=0, le=MAX_OVERTIME_HOURS)


class RentalDraft(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    renterName: str = Field(min_length=MIN_RENTER_NAME_LENGTH, max_length=MAX_RENTER_NAME_LENGTH)
    renterPhone: str
    renterEmail: Optional[EmailStr] = None
    startDate: date
    endDate: date
    excavators: List[RentalItemDraft] = Field(min_length=1, max_length=MAX_EXCAVATORS_PER_RENTAL)

    @field_validator("renterName", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("renterPhone")
    @classmethod
    def _normalize_phone(cls, value: str) -> str:
        return validate_phone_number(value)

    @field_validator("renterEmail", mode="before")
    @classmethod
    def _blank_email(cls, value):
        return _blank_email_to_none(value)


class RentalUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    renterName: Optional[str] = Field(None, min_length=MIN_RENTER_NAME_LENGTH, max_length=MAX_RENTER_NAME_LENGTH)
    renterPhone: Optional[str] = None
    renterEmail: Optional[EmailStr] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    excavators: Optional[List[RentalItemDraft]] = Field(None, min_length=1, max_length=MAX_EXCAVATORS_PER_RENTAL)
    acknowledgeConflict: bool = False

    @field_validator("renterName", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("renterPhone")
    @classmethod
    def _normalize_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return validate_phone_number(value)

    @field_validator("renterEmail", mode="before")
    @classmethod
    def _blank_email(cls, value):
        return _blank_email_to_none(value)


class RentalStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Literal["aktif", "cancelled", "completed"]


class InvoicePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    isPaid: bool = True
