from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

ACCOUNT_SID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*AC[0-9a-f]{32}\s*$")
AUTH_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*[0-9a-f]{32}\s*$")


def validate_account_sid(value: str) -> str:
    """Return the trimmed Account SID, or raise ValueError."""
    if not ACCOUNT_SID_PATTERN.match(value):
        raise ValueError("Invalid Account SID")
    return value.strip()


def validate_auth_token(value: str) -> str:
    """Return the trimmed Auth Token, or raise ValueError."""
    if not AUTH_TOKEN_PATTERN.match(value):
        raise ValueError("Invalid Auth Token")
    return value.strip()


class Credentials(BaseModel):
    """Twilio account credentials. Held in memory for a single run."""

    model_config = ConfigDict(frozen=True)

    account_sid: str
    auth_token: str = Field(repr=False)

    @field_validator("account_sid")
    @classmethod
    def _check_account_sid(cls, v: str) -> str:
        return validate_account_sid(v)

    @field_validator("auth_token")
    @classmethod
    def _check_auth_token(cls, v: str) -> str:
        return validate_auth_token(v)


class PhoneNumber(BaseModel):
    model_config = ConfigDict(frozen=True)

    sid: str
    phone_number: str
    sms: bool = False
    status: str = ""


class IncomingMessage(BaseModel):
    """An inbound SMS as posted by Twilio to the callback URL."""

    sender: str = Field("", alias="From")
    body: str = Field("", alias="Body")

    def line(self) -> str:
        return f"{self.sender} {self.body}"


def message_from_form(form: Mapping[str, object]) -> IncomingMessage:
    """
    Build an IncomingMessage from parsed webhook form fields.

    Missing From/Body fields are not an error; they become empty strings.
    Uploaded files in a multipart body are ignored.
    """
    fields: dict[str, str] = {}
    for key in ("From", "Body"):
        value = form.get(key)
        if isinstance(value, str):
            fields[key] = value
    return IncomingMessage.model_validate(fields)
