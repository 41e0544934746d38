from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from signdesk.services.layout import resolve_anchor

DEFAULT_LAYOUT = {
    "text_size": 14.0,
    "line_gap": 6.0,
    "margin_x": 16.0,
    "margin_y": 16.0,
    "padding_x": 6.0,
    "padding_y": 6.0,
}


def format_stamp_time(moment: datetime | None = None) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SS.mmm UTC``."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S.") + f"{moment.microsecond // 1000:03d} UTC"


class StampOptions(BaseModel):
    """Placement and header text for the signer block."""

    text_size: float = Field(DEFAULT_LAYOUT["text_size"], description="Font size in points.")
    line_gap: float = Field(DEFAULT_LAYOUT["line_gap"], description="Gap between lines in points.")
    margin_x: float = Field(DEFAULT_LAYOUT["margin_x"])
    margin_y: float = Field(DEFAULT_LAYOUT["margin_y"])
    padding_x: float = Field(DEFAULT_LAYOUT["padding_x"])
    padding_y: float = Field(DEFAULT_LAYOUT["padding_y"])
    anchor: str = Field("bottom-left", description="top-left | top-right | bottom-left | bottom-right")
    date_time_text: str = Field(default_factory=format_stamp_time)
    certificate_text: str = "N/A"
    status_text: str = "Prepared"

    @field_validator("anchor", mode="before")
    @classmethod
    def normalise_anchor(cls, value: Any) -> str:
        return resolve_anchor(value)

    @field_validator("text_size", "line_gap", "margin_x", "margin_y", "padding_x", "padding_y", mode="before")
    @classmethod
    def positive_or_default(cls, value: Any, info: ValidationInfo) -> float:
        # blank, zero, negative or garbage all mean "use the default"
        default = DEFAULT_LAYOUT[info.field_name]
        try:
            number = float(value)
        except (TypeError, ValueError):
            return default
        return number if number > 0 else default

    @field_validator("date_time_text", "certificate_text", "status_text", mode="before")
    @classmethod
    def blank_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            if info.field_name == "date_time_text":
                return format_stamp_time()
            return cls.model_fields[info.field_name].default
        return value


class SignStoredRequest(BaseModel):
    document_id: Optional[int] = Field(None, alias="documentId", description="Id returned by /upload.")

    model_config = {"populate_by_name": True}

