"""
Video Session Models
Scheduled and live instructional video sessions tied to a course
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime
from enum import Enum
import re

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
DATE_FORMAT = "%Y-%m-%d"

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
DURATION_MIN = 15
DURATION_MAX = 180
PARTICIPANTS_MIN = 1
PARTICIPANTS_MAX = 100

# ============================================================================
# ENUMS
# ============================================================================

class SessionStatus(str, Enum):
    """Session lifecycle status"""
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"  # Readable only, no operation sets it

class SessionType(str, Enum):
    LIVE = "live"
    RECORDED = "recorded"
    HYBRID = "hybrid"

class RecurringPattern(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

class ParticipantStatus(str, Enum):
    """Participant attendance status, moves forward only"""
    REGISTERED = "registered"
    JOINED = "joined"
    LEFT = "left"

class MaterialType(str, Enum):
    PDF = "pdf"
    DOC = "doc"
    VIDEO = "video"
    AUDIO = "audio"
    LINK = "link"
    OTHER = "other"

def _validate_date(value: Optional[str], field_name: str) -> Optional[str]:
    if value is None:
        return value
    try:
        datetime.strptime(value, DATE_FORMAT)
        return value
    except ValueError:
        raise ValueError(f"{field_name} must be in YYYY-MM-DD format")

def _validate_time(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not TIME_PATTERN.match(value):
        raise ValueError("scheduled_time must be in HH:MM format")
    return normalize_time(value)

def normalize_time(value: str) -> str:
    """Zero-pad the hour so stored times sort correctly ("9:05" -> "09:05")"""
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"

# ============================================================================
# SUB-MODELS
# ============================================================================

class SessionSettings(BaseModel):
    """Per-session feature switches"""
    allow_recording: bool = True
    allow_chat: bool = True
    allow_screen_share: bool = True
    require_registration: bool = True
    send_reminders: bool = True
    auto_record: bool = False

# ============================================================================
# BASE SESSION MODEL
# ============================================================================

class VideoSessionBase(BaseModel):
    """Base session model with common fields"""
    title: str = Field(..., min_length=TITLE_MIN_LENGTH, max_length=TITLE_MAX_LENGTH, description="Session title")
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    course_id: str = Field(..., description="Course the session belongs to")
    scheduled_date: str = Field(..., description="Date of session in YYYY-MM-DD format")
    scheduled_time: str = Field(..., description="Start time in 24h HH:MM format")
    duration: int = Field(..., ge=DURATION_MIN, le=DURATION_MAX, description="Planned duration in minutes")
    max_participants: int = Field(..., ge=PARTICIPANTS_MIN, le=PARTICIPANTS_MAX, description="Ceiling on concurrently joined participants")
    session_type: SessionType = SessionType.LIVE
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    recurring_end_date: Optional[str] = Field(None, description="Last possible occurrence date in YYYY-MM-DD format")
    session_notes: Optional[str] = None
    settings: SessionSettings = Field(default_factory=SessionSettings)

    @validator('title', pre=True)
    def strip_title(cls, v):
        return v.strip() if isinstance(v, str) else v

    @validator('scheduled_date')
    def validate_scheduled_date(cls, v):
        """Validate date format"""
        return _validate_date(v, 'scheduled_date')

    @validator('recurring_end_date')
    def validate_recurring_end_date(cls, v):
        return _validate_date(v, 'recurring_end_date')

    @validator('scheduled_time')
    def validate_scheduled_time(cls, v):
        return _validate_time(v)

# ============================================================================
# SESSION CREATE MODEL
# ============================================================================

class VideoSessionCreate(VideoSessionBase):
    """Model for creating a session; the caller becomes the instructor"""

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Week 1 Live Q&A",
                "description": "Open questions on the first module",
                "course_id": "507f1f77bcf86cd799439011",
                "scheduled_date": "2025-01-01",
                "scheduled_time": "18:30",
                "duration": 60,
                "max_participants": 25,
                "session_type": "live",
                "is_recurring": True,
                "recurring_pattern": "weekly",
                "recurring_end_date": "2025-01-22"
            }
        }

# ============================================================================
# SESSION UPDATE MODEL
# ============================================================================

class VideoSessionUpdate(BaseModel):
    """Model for updating a scheduled session"""
    title: Optional[str] = Field(None, min_length=TITLE_MIN_LENGTH, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    duration: Optional[int] = Field(None, ge=DURATION_MIN, le=DURATION_MAX)
    max_participants: Optional[int] = Field(None, ge=PARTICIPANTS_MIN, le=PARTICIPANTS_MAX)
    session_type: Optional[SessionType] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None
    recurring_end_date: Optional[str] = None
    session_notes: Optional[str] = None
    recording_url: Optional[str] = None
    settings: Optional[SessionSettings] = None

    @validator('title', pre=True)
    def strip_title(cls, v):
        return v.strip() if isinstance(v, str) else v

    @validator('scheduled_date')
    def validate_scheduled_date(cls, v):
        return _validate_date(v, 'scheduled_date')

    @validator('recurring_end_date')
    def validate_recurring_end_date(cls, v):
        return _validate_date(v, 'recurring_end_date')

    @validator('scheduled_time')
    def validate_scheduled_time(cls, v):
        return _validate_time(v)

    class Config:
        json_schema_extra = {
            "example": {
                "scheduled_time": "19:00",
                "max_participants": 40,
                "session_notes": "Moved by 30 minutes"
            }
        }

# ============================================================================
# MATERIALS & FEEDBACK
# ============================================================================

class MaterialCreate(BaseModel):
    """Material attached to a session"""
    name: str = Field(..., min_length=1, description="Display name")
    type: MaterialType
    url: str = Field(..., description="Where the material is hosted")
    size: Optional[str] = None

    @validator('name', pre=True)
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @validator('url')
    def validate_url(cls, v):
        if not re.match(r"^https?://[^\s/$.?#].[^\s]*$", v, re.IGNORECASE):
            raise ValueError('url must be a valid http(s) URL')
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Slides",
                "type": "pdf",
                "url": "https://cdn.learnhub.com/slides/week1.pdf",
                "size": "2.4 MB"
            }
        }

class FeedbackCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)

# ============================================================================
# SESSION FILTERS
# ============================================================================

class SessionFilterParams(BaseModel):
    """Parameters for filtering sessions"""
    status: Optional[SessionStatus] = None
    course_id: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @validator('date_from', 'date_to')
    def validate_dates(cls, v):
        return _validate_date(v, 'date')

    class Config:
        json_schema_extra = {
            "example": {
                "status": "scheduled",
                "course_id": "507f1f77bcf86cd799439011",
                "date_from": "2025-01-01",
                "date_to": "2025-03-31",
                "page": 1,
                "limit": 10
            }
        }
