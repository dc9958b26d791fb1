from datetime import datetime
from typing import Optional, Any, Dict, Generic, List, Literal, TypeVar
from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import statuses

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    count: int
    total_pages: int
    current_page: int
    data: List[T]


class StatusOut(BaseModel):
    id: int
    key: str
    name: str
    terminal: bool


class _StatusNamed(BaseModel):
    status: int
    status_name: str = ""

    @model_validator(mode="after")
    def _fill_status_name(self):
        self.status_name = statuses.name_of(self.status)
        return self


class WigRequestBase64Create(BaseModel):
    evidence: str = Field(description="data:<mime>;base64,<payload> URI")
    note: Optional[str] = None


class WigRequestOut(_StatusNamed):
    id: int
    requester_id: int
    note: Optional[str] = None
    evidence_content_type: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class NoteUpdate(BaseModel):
    note: Optional[str] = None


class RequestStatusUpdate(BaseModel):
    status: int
    note: Optional[str] = None


class AnalysisClaim(BaseModel):
    notes: Optional[str] = None


class AnalysisUpdate(BaseModel):
    status: int
    notes: Optional[str] = None


class AnalysisOut(_StatusNamed):
    id: int
    request_id: int
    institution_id: int
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class RequestSummaryOut(BaseModel):
    request_id: int
    pending: int = 0
    under_review: int = 0
    approved: int = 0
    rejected: int = 0
    completed: int = 0
    cancelled_by_requester: int = 0
    total: int = 0
    has_analyses: bool = False


class WigCreate(BaseModel):
    wig_type: str
    color: str
    length_cm: Optional[float] = Field(default=None, ge=0)
    size: Literal["P", "M", "G"] = "M"


class WigUpdate(BaseModel):
    wig_type: Optional[str] = None
    color: Optional[str] = None
    length_cm: Optional[float] = Field(default=None, ge=0)
    size: Optional[Literal["P", "M", "G"]] = None
    available: Optional[bool] = None


class WigOut(BaseModel):
    id: int
    institution_id: int
    wig_type: str
    color: str
    length_cm: Optional[float] = None
    size: str
    available: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class DonationCreate(BaseModel):
    wig_id: int
    request_id: int
    note: Optional[str] = None


class DonationUpdate(BaseModel):
    note: Optional[str] = None


class DonationOut(BaseModel):
    id: int
    wig_id: int
    request_id: int
    institution_id: int
    note: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class NotificationOut(BaseModel):
    id: int
    user_id: int
    category: str
    title: Optional[str] = None
    message: str
    is_read: bool
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
