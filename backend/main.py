from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from functools import lru_cache
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware
from typing import Iterable, List, Optional
import logging
import time

import schemas
import storage
from auth import (
    authenticate, get_current_account, get_session_store, hash_password,
    login_session, logout_session, require_admin, verify_password,
)
from config import get_settings
from database import get_db, init_db
from media import MediaHost
from sessions import MemorySessionStore, SessionStore
from uploads import (
    FLYER_EXTENSIONS, FLYER_FOLDER, MATERIAL_EXTENSIONS, MATERIAL_FOLDER,
    PDF_EXTENSIONS, PHOTO_EXTENSIONS, PHOTO_FOLDER, PHOTO_TRANSFORMATION, PUBLICATION_FOLDER,
    attachment_filename, proxy_download, publish_upload, stage_upload,
)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(levelname)s - %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# ----------------- Database Setup -----------------
try:
    init_db()
except OperationalError as e:
    logger.critical(f"Cannot connect to the database: {e}")
    raise SystemExit(1)

# ----------------- FastAPI App -----------------
app = FastAPI(title="Academic Portfolio API")
app.state.session_store = MemorySessionStore()

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie=settings.session_cookie,
    max_age=settings.session_max_age,
    same_site="lax",
    https_only=settings.is_production,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        elapsed = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} in {elapsed:.0f}ms")
    return response


# ----------------- Error Handlers -----------------
def _field_errors(errors: Iterable[dict]) -> List[dict]:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in errors
    ]


@app.exception_handler(RequestValidationError)
async def request_validation_failed(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": _field_errors(exc.errors())},
    )


@app.exception_handler(ValidationError)
async def payload_validation_failed(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": _field_errors(exc.errors())},
    )


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ----------------- Dependencies -----------------
@lru_cache()
def get_media_host() -> MediaHost:
    return MediaHost(settings)


def _changes(payload, nullable: Iterable[str] = ()) -> dict:
    """Fields the client actually sent; explicit nulls only clear optional columns."""
    sent = payload.model_dump(exclude_unset=True)
    return {k: v for k, v in sent.items() if v is not None or k in nullable}


def _not_found(entity: str):
    return HTTPException(status_code=404, detail=f"{entity} not found")


@app.get("/")
def home():
    return {"message": "Backend is running!"}


# ----------------- Auth Endpoints -----------------
@app.post("/api/register", response_model=schemas.AccountOut, status_code=201)
def register(
    payload: schemas.Registration,
    request: Request,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
):
    if storage.get_account_by_username(db, payload.username):
        raise HTTPException(status_code=400, detail="Username already exists")
    try:
        account = storage.create_account(db, payload.username, hash_password(payload.password))
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Username already exists")

    login_session(request, store, account)
    logger.info(f"[Auth] Registered user {account.id}")
    return account


@app.post("/api/login", response_model=schemas.AccountOut)
def login(
    payload: schemas.Credentials,
    request: Request,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
):
    account = authenticate(db, payload.username, payload.password)
    if account is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    login_session(request, store, account)
    logger.info(f"[Auth] Login successful for user {account.id}")
    return account


@app.post("/api/logout", response_model=schemas.Message)
def logout(request: Request, store: SessionStore = Depends(get_session_store)):
    logout_session(request, store)
    return {"message": "Logged out successfully"}


@app.get("/api/user", response_model=schemas.AccountOut)
def current_user(account=Depends(get_current_account)):
    return account


@app.put("/api/admin/credentials", response_model=schemas.Message)
def update_credentials(
    payload: schemas.CredentialsUpdate,
    request: Request,
    account=Depends(require_admin),
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
):
    if not verify_password(account.password_hash, payload.current_password):
        logger.info(f"[Auth] Credential change rejected for user {account.id}")
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    new_username = payload.new_username
    if new_username and new_username != account.username:
        if storage.get_account_by_username(db, new_username):
            raise HTTPException(status_code=400, detail="Username already exists")

    storage.update_account(
        db,
        account,
        username=new_username,
        password_hash=hash_password(payload.new_password) if payload.new_password else None,
    )
    # The client has to sign in again with the new credentials.
    logout_session(request, store)
    logger.info(f"[Auth] Credentials updated for user {account.id}")
    return {"message": "Credentials updated. Please log in again."}


# ----------------- Profile Endpoints -----------------
@app.get("/api/profile", response_model=schemas.Profile)
def get_profile(db: Session = Depends(get_db)):
    return storage.get_profile(db)


@app.put("/api/profile", response_model=schemas.Profile)
def update_profile(
    payload: schemas.ProfileUpdate,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return storage.upsert_profile(db, _changes(payload, nullable=("photo_url",)))


@app.put("/api/profile/upload-photo", response_model=schemas.Profile)
async def upload_profile_photo(
    photo: Optional[UploadFile] = File(None),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    async with stage_upload(photo, settings.max_photo_bytes, PHOTO_EXTENSIONS) as staged:
        uploaded = await publish_upload(media, staged, PHOTO_FOLDER, transformation=PHOTO_TRANSFORMATION)
    return await run_in_threadpool(storage.upsert_profile, db, {"photo_url": uploaded.url})


# ----------------- Course Endpoints -----------------
@app.get("/api/courses", response_model=List[schemas.Course])
def list_courses(db: Session = Depends(get_db)):
    return storage.read_courses(db)


@app.get("/api/courses/{course_id}", response_model=schemas.Course)
def get_course(course_id: str, db: Session = Depends(get_db)):
    course = storage.get_course(db, course_id)
    if not course:
        raise _not_found("Course")
    return course


@app.post("/api/courses", response_model=schemas.Course, status_code=201)
def create_course(
    payload: schemas.CourseCreate,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    return storage.create_course(db, payload)


@app.put("/api/courses/{course_id}", response_model=schemas.Course)
def update_course(
    course_id: str,
    payload: schemas.CourseUpdate,
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
):
    course = storage.get_course(db, course_id)
    if not course:
        raise _not_found("Course")
    return storage.update_course(db, course, _changes(payload))


@app.delete("/api/courses/{course_id}", status_code=204, response_class=Response)
def delete_course(course_id: str, admin=Depends(require_admin), db: Session = Depends(get_db)):
    storage.delete_course(db, course_id)
    return Response(status_code=204)


# ----------------- Course Material Endpoints -----------------
@app.get("/api/courses/{course_id}/materials", response_model=List[schemas.CourseMaterial])
def list_materials(course_id: str, db: Session = Depends(get_db)):
    if not storage.get_course(db, course_id):
        raise _not_found("Course")
    return storage.read_materials(db, course_id)


@app.post("/api/courses/{course_id}/materials/upload", response_model=schemas.CourseMaterial, status_code=201)
async def upload_material(
    course_id: str,
    title: str = Form(...),
    type: str = Form(...),
    submission_date: Optional[str] = Form(None, alias="submissionDate"),
    file: Optional[UploadFile] = File(None),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    course = await run_in_threadpool(storage.get_course, db, course_id)
    if not course:
        raise _not_found("Course")
    payload = schemas.MaterialCreate(
        course_id=course_id, title=title, type=type, submission_date=submission_date or None,
    )

    async with stage_upload(file, settings.max_document_bytes, MATERIAL_EXTENSIONS) as staged:
        uploaded = await publish_upload(media, staged, MATERIAL_FOLDER)
    return await run_in_threadpool(storage.create_material, db, payload, uploaded.url, staged.filename)


@app.get("/api/materials/{material_id}", response_model=schemas.CourseMaterial)
def get_material(material_id: str, db: Session = Depends(get_db)):
    material = storage.get_material(db, material_id)
    if not material:
        raise _not_found("Material")
    return material


@app.get("/api/materials/{material_id}/download")
async def download_material(
    material_id: str,
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    material = await run_in_threadpool(storage.get_material, db, material_id)
    if not material:
        raise _not_found("Material")
    filename = attachment_filename(material.title, material.file_url, material.file_name)
    return await proxy_download(media, material.file_url, filename)


@app.delete("/api/materials/{material_id}", status_code=204, response_class=Response)
def delete_material(material_id: str, admin=Depends(require_admin), db: Session = Depends(get_db)):
    if not storage.delete_material(db, material_id):
        logger.info(f"Delete of missing material {material_id} ignored")
    return Response(status_code=204)


# ----------------- Publication Endpoints -----------------
@app.get("/api/publications", response_model=List[schemas.Publication])
def list_publications(db: Session = Depends(get_db)):
    return storage.read_publications(db)


@app.get("/api/publications/{publication_id}", response_model=schemas.Publication)
def get_publication(publication_id: str, db: Session = Depends(get_db)):
    publication = storage.get_publication(db, publication_id)
    if not publication:
        raise _not_found("Publication")
    return publication


@app.post("/api/publications", response_model=schemas.Publication, status_code=201)
async def create_publication(
    data: str = Form(...),
    pdf: Optional[UploadFile] = File(None),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    payload = schemas.PublicationCreate.model_validate_json(data)

    pdf_url = pdf_name = None
    if pdf is not None and pdf.filename:
        async with stage_upload(pdf, settings.max_document_bytes, PDF_EXTENSIONS) as staged:
            uploaded = await publish_upload(media, staged, PUBLICATION_FOLDER)
        pdf_url, pdf_name = uploaded.url, staged.filename
    return await run_in_threadpool(storage.create_publication, db, payload, pdf_url, pdf_name)


@app.put("/api/publications/{publication_id}", response_model=schemas.Publication)
async def update_publication(
    publication_id: str,
    data: str = Form("{}"),
    pdf: Optional[UploadFile] = File(None),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    payload = schemas.PublicationUpdate.model_validate_json(data)
    publication = await run_in_threadpool(storage.get_publication, db, publication_id)
    if not publication:
        raise _not_found("Publication")

    changes = _changes(payload, nullable=("journal", "volume", "issue", "pages", "doi", "url"))
    if pdf is not None and pdf.filename:
        async with stage_upload(pdf, settings.max_document_bytes, PDF_EXTENSIONS) as staged:
            uploaded = await publish_upload(media, staged, PUBLICATION_FOLDER)
        changes.update(pdf_url=uploaded.url, pdf_name=staged.filename)
    return await run_in_threadpool(storage.update_publication, db, publication, changes)


@app.get("/api/publications/{publication_id}/download")
async def download_publication(
    publication_id: str,
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    publication = await run_in_threadpool(storage.get_publication, db, publication_id)
    if not publication:
        raise _not_found("Publication")
    if not publication.pdf_url:
        raise HTTPException(status_code=404, detail="No PDF available for this publication")
    filename = attachment_filename(publication.title, publication.pdf_url, publication.pdf_name)
    return await proxy_download(media, publication.pdf_url, filename)


@app.delete("/api/publications/{publication_id}", status_code=204, response_class=Response)
def delete_publication(publication_id: str, admin=Depends(require_admin), db: Session = Depends(get_db)):
    storage.delete_publication(db, publication_id)
    return Response(status_code=204)


# ----------------- Event / Talk Endpoints -----------------
# /api/talks is the older name for the same collection.
@app.get("/api/events", response_model=List[schemas.Talk])
@app.get("/api/talks", response_model=List[schemas.Talk], include_in_schema=False)
def list_talks(db: Session = Depends(get_db)):
    return storage.read_talks(db)


@app.get("/api/events/{talk_id}", response_model=schemas.Talk)
@app.get("/api/talks/{talk_id}", response_model=schemas.Talk, include_in_schema=False)
def get_talk(talk_id: str, db: Session = Depends(get_db)):
    talk = storage.get_talk(db, talk_id)
    if not talk:
        raise _not_found("Event")
    return talk


@app.post("/api/events", response_model=schemas.Talk, status_code=201)
@app.post("/api/talks", response_model=schemas.Talk, status_code=201, include_in_schema=False)
async def create_talk(
    data: str = Form(...),
    flyer: Optional[UploadFile] = File(None),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    payload = schemas.TalkCreate.model_validate_json(data)

    flyer_url = flyer_name = None
    if flyer is not None and flyer.filename:
        async with stage_upload(flyer, settings.max_flyer_bytes, FLYER_EXTENSIONS) as staged:
            uploaded = await publish_upload(media, staged, FLYER_FOLDER)
        flyer_url, flyer_name = uploaded.url, staged.filename
    return await run_in_threadpool(storage.create_talk, db, payload, flyer_url, flyer_name)


@app.put("/api/events/{talk_id}", response_model=schemas.Talk)
@app.put("/api/talks/{talk_id}", response_model=schemas.Talk, include_in_schema=False)
async def update_talk(
    talk_id: str,
    data: str = Form("{}"),
    flyer: Optional[UploadFile] = File(None),
    admin=Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaHost = Depends(get_media_host),
):
    payload = schemas.TalkUpdate.model_validate_json(data)
    talk = await run_in_threadpool(storage.get_talk, db, talk_id)
    if not talk:
        raise _not_found("Event")

    changes = _changes(payload, nullable=("registration_link",))
    if flyer is not None and flyer.filename:
        async with stage_upload(flyer, settings.max_flyer_bytes, FLYER_EXTENSIONS) as staged:
            uploaded = await publish_upload(media, staged, FLYER_FOLDER)
        changes.update(flyer_url=uploaded.url, flyer_name=staged.filename)
    return await run_in_threadpool(storage.update_talk, db, talk, changes)


@app.delete("/api/events/{talk_id}", status_code=204, response_class=Response)
@app.delete("/api/talks/{talk_id}", status_code=204, response_class=Response, include_in_schema=False)
def delete_talk(talk_id: str, admin=Depends(require_admin), db: Session = Depends(get_db)):
    storage.delete_talk(db, talk_id)
    return Response(status_code=204)


def run():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=not settings.is_production)


if __name__ == "__main__":
    run()
