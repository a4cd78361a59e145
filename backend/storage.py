"""Read/write helpers over the ORM models, one group per collection."""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
import schemas

logger = logging.getLogger(__name__)

# The profile is a singleton row with a fixed key.
PROFILE_ID = "profile"

DEFAULT_PROFILE = {
    "name": "Professor Name",
    "title": "Professor",
    "bio": "",
    "photo_url": None,
    "contact": {"email": "professor@university.edu", "phone": None, "office": None},
}


def _apply(row, changes: dict):
    for key, value in changes.items():
        setattr(row, key, value)
    return row


def _delete_row(db: Session, model, row_id: str) -> bool:
    row = db.get(model, row_id)
    if row is None:
        return False
    db.delete(row)
    db.commit()
    return True


# ----------------- Accounts -----------------
def get_account(db: Session, account_id: str) -> Optional[models.Account]:
    return db.get(models.Account, account_id)


def get_account_by_username(db: Session, username: str) -> Optional[models.Account]:
    return db.query(models.Account).filter(models.Account.username == username).first()


def create_account(db: Session, username: str, password_hash: str, is_admin: bool = False) -> models.Account:
    account = models.Account(username=username, password_hash=password_hash, is_admin=is_admin)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def update_account(db: Session, account: models.Account, username: Optional[str] = None,
                   password_hash: Optional[str] = None) -> models.Account:
    if username:
        account.username = username
    if password_hash:
        account.password_hash = password_hash
    db.commit()
    db.refresh(account)
    return account


# ----------------- Profile -----------------
def _new_profile(db: Session, changes: dict) -> models.Profile:
    fields = {**DEFAULT_PROFILE, "contact": dict(DEFAULT_PROFILE["contact"]), **changes}
    db.add(models.Profile(id=PROFILE_ID, **fields))
    try:
        db.commit()
    except IntegrityError:
        # Another request created it first; apply our changes to that row.
        db.rollback()
        profile = db.get(models.Profile, PROFILE_ID)
        _apply(profile, changes)
        db.commit()
    return db.get(models.Profile, PROFILE_ID)


def get_profile(db: Session) -> models.Profile:
    """Return the singleton profile, creating the default one on first read."""
    profile = db.get(models.Profile, PROFILE_ID)
    if profile is None:
        profile = _new_profile(db, {})
        logger.info("Created default profile")
    return profile


def upsert_profile(db: Session, changes: dict) -> models.Profile:
    profile = db.get(models.Profile, PROFILE_ID)
    if profile is None:
        return _new_profile(db, changes)
    _apply(profile, changes)
    db.commit()
    db.refresh(profile)
    return profile


# ----------------- Courses -----------------
def read_courses(db: Session) -> List[models.Course]:
    return db.query(models.Course).order_by(models.Course.created_at).all()


def get_course(db: Session, course_id: str) -> Optional[models.Course]:
    return db.get(models.Course, course_id)


def create_course(db: Session, payload: schemas.CourseCreate) -> models.Course:
    course = models.Course(**payload.model_dump())
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


def update_course(db: Session, course: models.Course, changes: dict) -> models.Course:
    _apply(course, changes)
    db.commit()
    db.refresh(course)
    return course


def delete_course(db: Session, course_id: str) -> bool:
    # Materials are not cascaded; they keep their course_id.
    return _delete_row(db, models.Course, course_id)


# ----------------- Course Materials -----------------
def read_materials(db: Session, course_id: str) -> List[models.CourseMaterial]:
    return (
        db.query(models.CourseMaterial)
        .filter(models.CourseMaterial.course_id == course_id)
        .order_by(models.CourseMaterial.uploaded_at)
        .all()
    )


def get_material(db: Session, material_id: str) -> Optional[models.CourseMaterial]:
    return db.get(models.CourseMaterial, material_id)


def create_material(db: Session, payload: schemas.MaterialCreate, file_url: str,
                    file_name: Optional[str] = None) -> models.CourseMaterial:
    material = models.CourseMaterial(**payload.model_dump(), file_url=file_url, file_name=file_name)
    db.add(material)
    db.commit()
    db.refresh(material)
    return material


def delete_material(db: Session, material_id: str) -> bool:
    return _delete_row(db, models.CourseMaterial, material_id)


# ----------------- Publications -----------------
def read_publications(db: Session) -> List[models.Publication]:
    return (
        db.query(models.Publication)
        .order_by(models.Publication.year.desc(), models.Publication.created_at.desc())
        .all()
    )


def get_publication(db: Session, publication_id: str) -> Optional[models.Publication]:
    return db.get(models.Publication, publication_id)


def create_publication(db: Session, payload: schemas.PublicationCreate, pdf_url: Optional[str] = None,
                       pdf_name: Optional[str] = None) -> models.Publication:
    publication = models.Publication(**payload.model_dump(), pdf_url=pdf_url, pdf_name=pdf_name)
    db.add(publication)
    db.commit()
    db.refresh(publication)
    return publication


def update_publication(db: Session, publication: models.Publication, changes: dict) -> models.Publication:
    _apply(publication, changes)
    db.commit()
    db.refresh(publication)
    return publication


def delete_publication(db: Session, publication_id: str) -> bool:
    return _delete_row(db, models.Publication, publication_id)


# ----------------- Talks -----------------
def talk_status(talk_date: date, requested: Optional[str] = None, today: Optional[date] = None) -> str:
    """Advisory status: cancelled sticks, otherwise derived from the date."""
    if requested == schemas.TalkStatus.cancelled:
        return schemas.TalkStatus.cancelled.value
    today = today or date.today()
    if talk_date < today:
        return schemas.TalkStatus.completed.value
    return schemas.TalkStatus.upcoming.value


def read_talks(db: Session) -> List[models.Talk]:
    return db.query(models.Talk).order_by(models.Talk.date, models.Talk.time).all()


def get_talk(db: Session, talk_id: str) -> Optional[models.Talk]:
    return db.get(models.Talk, talk_id)


def create_talk(db: Session, payload: schemas.TalkCreate, flyer_url: Optional[str] = None,
                flyer_name: Optional[str] = None) -> models.Talk:
    fields = payload.model_dump()
    fields["status"] = talk_status(payload.date, payload.status)
    talk = models.Talk(**fields, flyer_url=flyer_url, flyer_name=flyer_name)
    db.add(talk)
    db.commit()
    db.refresh(talk)
    return talk


def update_talk(db: Session, talk: models.Talk, changes: dict) -> models.Talk:
    _apply(talk, changes)
    talk.status = talk_status(talk.date, changes.get("status", talk.status))
    db.commit()
    db.refresh(talk)
    return talk


def delete_talk(db: Session, talk_id: str) -> bool:
    return _delete_row(db, models.Talk, talk_id)
