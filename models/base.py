"""
Pydantic models for forms, folders and submissions.

Stored documents use camelCase keys (formId, notificationEmail, submittedAt),
so every model accepts and emits camelCase aliases while Python code uses
snake_case attributes.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

import bleach
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class BaseDocModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase document keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def _clean_display_name(v: str) -> str:
    sanitized = bleach.clean(str(v or "").strip(), strip=True)
    if not sanitized:
        raise ValueError("name must not be blank")
    return sanitized[:255]


class FormModel(BaseDocModel):
    """A named ingestion endpoint owned by a user"""
    form_id: str
    name: str
    url: str
    owner_id: Optional[str] = None
    notification_email: Optional[str] = None
    folder_id: Optional[str] = None
    created_at: Optional[datetime] = None


class FolderModel(BaseDocModel):
    folder_id: str
    name: str
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None


class SubmissionModel(BaseDocModel):
    """One accepted post; `submitted_at` is None until the store stamps it"""
    id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    submitted_at: Optional[datetime] = None


class FormCreate(BaseDocModel):
    name: str
    notification_email: Optional[EmailStr] = None
    folder_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _clean_display_name(v)


class FormUpdate(BaseDocModel):
    """Only the notification address of a form is mutable"""
    notification_email: Optional[EmailStr] = None


class FolderCreate(BaseDocModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _clean_display_name(v)


class SubmissionTableRow(BaseDocModel):
    id: str
    submitted_at: str
    cells: Dict[str, str]


class SubmissionTable(BaseDocModel):
    form_id: str
    columns: List[str]
    rows: List[SubmissionTableRow]
