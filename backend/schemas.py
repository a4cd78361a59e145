"""Request and response shapes.

Each entity has an insertable model (what a client may send), a partial update
model, and a stored model that adds the server-assigned ``_id`` and timestamps.
Wire names are camelCase; Python attributes stay snake_case.
"""

from datetime import date as Date, datetime
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, model_validator
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
TimeOfDay = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True,
        use_enum_values=True, validate_default=True,
    )


class StoredMixin(CamelModel):
    id: str = Field(alias="_id")


# ----------------- Enums -----------------
class MaterialType(str, Enum):
    notes = "notes"
    tutorial = "tutorial"
    assignment = "assignment"
    slides = "slides"  # older uploads


class PublicationType(str, Enum):
    journal = "journal"
    conference = "conference"
    book = "book"
    book_chapter = "bookChapter"
    other = "other"


class PublicationStatus(str, Enum):
    published = "published"
    accepted = "accepted"
    in_press = "inPress"
    under_review = "underReview"


class TalkStatus(str, Enum):
    upcoming = "upcoming"
    completed = "completed"
    cancelled = "cancelled"


# ----------------- Accounts -----------------
class Credentials(CamelModel):
    username: NonEmptyStr
    password: str = Field(min_length=1)


class Registration(Credentials):
    password: str = Field(min_length=6)


class CredentialsUpdate(CamelModel):
    current_password: str = Field(min_length=1)
    new_username: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=3)]] = None
    new_password: Optional[str] = Field(default=None, min_length=6)

    @model_validator(mode="after")
    def _something_changes(self):
        if not self.new_username and not self.new_password:
            raise ValueError("Provide a new username or a new password")
        return self


class AccountOut(StoredMixin):
    username: str
    is_admin: bool


# ----------------- Profile -----------------
class Contact(CamelModel):
    email: EmailStr
    phone: Optional[str] = None
    office: Optional[str] = None


class ProfileCreate(CamelModel):
    name: NonEmptyStr
    title: NonEmptyStr
    bio: str = ""
    photo_url: Optional[str] = None
    contact: Contact


class ProfileUpdate(CamelModel):
    name: Optional[NonEmptyStr] = None
    title: Optional[NonEmptyStr] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    contact: Optional[Contact] = None


class Profile(StoredMixin, ProfileCreate):
    updated_at: Optional[datetime] = None


# ----------------- Courses -----------------
class CourseCreate(CamelModel):
    title: NonEmptyStr
    code: NonEmptyStr
    description: str
    semester: NonEmptyStr
    session: NonEmptyStr


class CourseUpdate(CamelModel):
    title: Optional[NonEmptyStr] = None
    code: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    semester: Optional[NonEmptyStr] = None
    session: Optional[NonEmptyStr] = None


class Course(StoredMixin, CourseCreate):
    created_at: Optional[datetime] = None


# ----------------- Course Materials -----------------
class MaterialCreate(CamelModel):
    course_id: NonEmptyStr
    title: NonEmptyStr
    type: MaterialType
    submission_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _due_date_only_for_assignments(self):
        if self.type != MaterialType.assignment:
            self.submission_date = None
        return self


class CourseMaterial(StoredMixin, MaterialCreate):
    file_url: str
    file_name: Optional[str] = None
    uploaded_at: Optional[datetime] = None


# ----------------- Publications -----------------
class Author(CamelModel):
    name: NonEmptyStr
    institution: Optional[str] = None
    is_main_author: bool = False


class PublicationCreate(CamelModel):
    title: NonEmptyStr
    abstract: str = ""
    authors: List[Author] = Field(min_length=1)
    publication_type: PublicationType
    year: int = Field(ge=1000, le=9999)
    journal: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    pages: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    status: PublicationStatus = PublicationStatus.published


class PublicationUpdate(CamelModel):
    title: Optional[NonEmptyStr] = None
    abstract: Optional[str] = None
    authors: Optional[List[Author]] = Field(default=None, min_length=1)
    publication_type: Optional[PublicationType] = None
    year: Optional[int] = Field(default=None, ge=1000, le=9999)
    journal: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    pages: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    status: Optional[PublicationStatus] = None


class Publication(StoredMixin, PublicationCreate):
    pdf_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ----------------- Talks -----------------
class TalkCreate(CamelModel):
    title: NonEmptyStr
    description: str = ""
    date: Date
    time: TimeOfDay
    venue: NonEmptyStr
    registration_link: Optional[str] = None
    status: TalkStatus = TalkStatus.upcoming


class TalkUpdate(CamelModel):
    title: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    date: Optional[Date] = None
    time: Optional[TimeOfDay] = None
    venue: Optional[NonEmptyStr] = None
    registration_link: Optional[str] = None
    status: Optional[TalkStatus] = None


class Talk(StoredMixin, TalkCreate):
    flyer_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Message(BaseModel):
    message: str
