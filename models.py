import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from exceptions import ValidationFailed

FIELD_KEY_PATTERN = re.compile(r"[A-Za-z0-9_]+")


class DeviceStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    BROKEN = "BROKEN"
    MAINTENANCE = "MAINTENANCE"
    LOST = "LOST"


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    TEXTAREA = "textarea"


class Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_cells(cls, data):
        # Empty spreadsheet cells arrive as "" and mean "not set"
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if not (isinstance(v, str) and v == "")}
        return data

    @classmethod
    def from_record(cls, record):
        return cls.model_validate(record)

    def to_record(self):
        return self.model_dump(mode="json", by_alias=True)


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat()


class DeviceLog(Record):
    id: str
    timestamp: str = Field("", alias="date")
    action: str
    performed_by: str = ""
    notes: Optional[str] = None
    report_image: Optional[str] = None


def new_log(action, performed_by, notes=None, report_image=None):
    return DeviceLog(
        id=str(uuid.uuid4()),
        timestamp=utc_now_iso(),
        action=action,
        performed_by=performed_by,
        notes=notes,
        report_image=report_image,
    )


class Device(Record):
    id: str
    name: str = ""
    asset_code: str = Field("", alias="code")
    category: str = ""
    status: DeviceStatus = DeviceStatus.AVAILABLE
    location: str = ""
    assigned_to: Optional[str] = None
    purchase_date: str = ""
    description: Optional[str] = None
    image_url: Optional[str] = None
    history: List[DeviceLog] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    def with_log(self, log, **changes):
        """Copy of the device with ``changes`` applied and ``log`` as newest entry."""
        changes["history"] = [log] + list(self.history)
        return type(self).model_validate({**self.model_dump(), **changes})


class User(Record):
    id: str
    username: str
    full_name: str = ""
    email: str = ""
    role: Role = Role.USER
    department: Optional[str] = None
    password_hash: Optional[str] = None
    must_change_password: bool = False
    last_login: Optional[int] = None

    coerce_flag = field_validator("must_change_password", mode="before")(_as_bool)

    def public_record(self):
        record = self.to_record()
        record.pop("passwordHash", None)
        return record


class CustomFieldDef(Record):
    key: str
    label: str = ""
    type: FieldType = FieldType.TEXT
    options: Optional[List[str]] = None
    required: bool = False

    coerce_required = field_validator("required", mode="before")(_as_bool)


class SystemConfig(Record):
    school_name: str = ""
    academic_year: str = ""
    categories: List[str] = Field(default_factory=list)
    custom_fields: List[CustomFieldDef] = Field(default_factory=list)

    def validate_fields(self):
        seen = set()
        for field in self.custom_fields:
            if not FIELD_KEY_PATTERN.fullmatch(field.key):
                raise ValidationFailed(f"Invalid custom field key: {field.key!r}")
            if field.key in seen:
                raise ValidationFailed(f"Duplicate custom field key: {field.key!r}")
            seen.add(field.key)
            if field.type == FieldType.SELECT and not field.options:
                raise ValidationFailed(f"Select field {field.key!r} needs at least one option")
            if not field.label:
                raise ValidationFailed(f"Custom field {field.key!r} needs a label")
