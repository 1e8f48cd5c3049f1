from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConversationSummaryResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_name: str = Field(default="Unknown", alias="customerName")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    summary: str = Field(..., min_length=1)
    next_action: str = Field(..., min_length=1, alias="nextAction")

    @field_validator("customer_name", mode="before")
    @classmethod
    def _default_name(cls, value):
        if value is None or not str(value).strip():
            return "Unknown"
        return str(value).strip()

    @field_validator("phone_number", mode="before")
    @classmethod
    def _blank_phone(cls, value):
        if value is None:
            return None
        cleaned = str(value).strip()
        if not cleaned or cleaned.lower() in {"null", "none", "unknown"}:
            return None
        return cleaned


SUMMARY_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "customerName": {
            "type": "string",
            "description": "Customer name if mentioned, otherwise 'Unknown'",
        },
        "phoneNumber": {
            "type": ["string", "null"],
            "description": "Customer phone number in international format if mentioned, otherwise null",
        },
        "summary": {
            "type": "string",
            "description": "2-3 sentence summary of the conversation",
        },
        "nextAction": {
            "type": "string",
            "description": "Recommended next step for the sales team",
        },
    },
    "required": ["customerName", "phoneNumber", "summary", "nextAction"],
    "additionalProperties": False,
}
