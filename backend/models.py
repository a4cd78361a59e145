from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Integer, String, Text

from database import Base, new_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(24), primary_key=True, default=new_id)
    username = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)


class Profile(Base):
    __tablename__ = "profile"

    id = Column(String(24), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    title = Column(String, nullable=False)
    bio = Column(Text, nullable=False, default="")
    photo_url = Column(String)
    contact = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Course(Base):
    __tablename__ = "courses"

    id = Column(String(24), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    code = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    semester = Column(String, nullable=False)
    session = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class CourseMaterial(Base):
    __tablename__ = "course_materials"

    id = Column(String(24), primary_key=True, default=new_id)
    # No foreign key: materials outlive a deleted course.
    course_id = Column(String(24), nullable=False, index=True)
    title = Column(String, nullable=False)
    type = Column(String, nullable=False)
    file_url = Column(String, nullable=False)
    file_name = Column(String)
    uploaded_at = Column(DateTime, default=utcnow)
    submission_date = Column(DateTime)


class Publication(Base):
    __tablename__ = "publications"

    id = Column(String(24), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    abstract = Column(Text, nullable=False, default="")
    authors = Column(JSON, nullable=False)
    publication_type = Column(String, nullable=False)
    year = Column(Integer, nullable=False, index=True)
    journal = Column(String)
    volume = Column(String)
    issue = Column(String)
    pages = Column(String)
    doi = Column(String)
    url = Column(String)
    pdf_url = Column(String)
    pdf_name = Column(String)
    status = Column(String, nullable=False, default="published")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Talk(Base):
    __tablename__ = "talks"

    id = Column(String(24), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)
    venue = Column(String, nullable=False)
    registration_link = Column(String)
    flyer_url = Column(String)
    flyer_name = Column(String)
    status = Column(String, nullable=False, default="upcoming")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
