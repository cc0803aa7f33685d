import datetime as dt
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, UploadFile, status

from .context import AppContext
from .errors import NotFoundError
from .middleware import get_context, get_current_session, require_roles, require_section
from .models import Role
from .policy import Section, compose_sections, require_account_creation
from .repositories import SEARCH_FIELDS, filter_records
from .schemas import (
    ENTITY_SCHEMAS,
    AccountCreateRequest,
    AccountOut,
    AttendanceMarkRequest,
    LoginRequest,
    LoginResponse,
    MeOut,
    MessageOut,
    RecordOut,
    RecordsOut,
    ReportOut,
    SectionOut,
    SignupRequest,
)
from .session import Session


router = APIRouter(prefix="/api/v1/school", tags=["School Admin"])

PHOTO_COLLECTIONS = {"students", "teachers", "staff"}


def _section_out(session: Session, include_denied: bool = False) -> list[SectionOut]:
    return [
        SectionOut(section=view.section, access=view.access, can_mutate=view.can_mutate)
        for view in compose_sections(session.role, include_denied=include_denied)
    ]


def _login_response(session: Session) -> LoginResponse:
    identity = session.require_identity()
    return LoginResponse(access_token=identity.token, uid=identity.uid, email=identity.email, role=session.role)


def _known_collection(collection: str) -> str:
    if collection not in ENTITY_SCHEMAS:
        raise NotFoundError(f"Unknown collection: {collection}")
    return collection


# --- auth ---


@router.post("/auth/login", response_model=LoginResponse)
async def login(payload: LoginRequest, ctx: AppContext = Depends(get_context)):
    session = ctx.new_session()
    await session.login(payload.email, payload.password)
    return _login_response(session)


@router.post("/auth/signup", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, ctx: AppContext = Depends(get_context)):
    require_account_creation(None, payload.role)
    session = ctx.new_session()
    await session.signup(payload.email, payload.password, payload.role)
    return _login_response(session)


@router.post("/auth/accounts", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
async def create_account(
    payload: AccountCreateRequest,
    ctx: AppContext = Depends(get_context),
    admin: Session = Depends(require_roles(Role.ADMIN)),
):
    require_account_creation(admin.role, payload.role)
    session = ctx.new_session()
    identity = await session.signup(payload.email, payload.password, payload.role, linked_id=payload.linked_id)
    return AccountOut(uid=identity.uid, email=identity.email, role=session.role, linked_id=payload.linked_id)


@router.post("/auth/logout", response_model=MessageOut)
async def logout(session: Session = Depends(get_current_session)):
    await session.logout()
    return MessageOut(message="Logged out")


@router.get("/me", response_model=MeOut)
async def me(session: Session = Depends(get_current_session)):
    identity = session.require_identity()
    return MeOut(
        uid=identity.uid,
        email=identity.email,
        role=session.role,
        greeting=session.greeting,
        sections=_section_out(session),
    )


@router.get("/sections", response_model=list[SectionOut])
async def sections(include_denied: bool = False, session: Session = Depends(get_current_session)):
    return _section_out(session, include_denied=include_denied)


# --- settings ---


@router.get("/settings")
async def read_settings(ctx: AppContext = Depends(get_context), session: Session = Depends(get_current_session)):
    return await ctx.repositories_for(session).settings.load()


@router.put("/settings")
async def save_settings(
    fields: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(require_section(Section.SETTINGS, mutate=True)),
):
    return await ctx.repositories_for(session).settings.save(fields)


@router.post("/settings/logo")
async def upload_logo(
    file: UploadFile = File(...),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(require_section(Section.SETTINGS, mutate=True)),
):
    suffix = (file.filename or "logo.jpg").rsplit(".", 1)[-1]
    return await ctx.repositories_for(session).settings.upload_logo(await file.read(), suffix=suffix)


# --- attendance ---


@router.get("/attendance", response_model=RecordsOut)
async def list_attendance(
    date: Optional[dt.date] = None,
    search: str = "",
    class_name: Optional[str] = None,
    kind: Optional[str] = None,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(require_section(Section.ATTENDANCE)),
):
    repo = ctx.repositories_for(session).attendance
    records = await repo.list_for_date(date)
    items = filter_records(records, search, SEARCH_FIELDS["attendance"], class_name=class_name, type=kind)
    return RecordsOut(version=repo.version, items=items)


@router.get("/attendance/status/{subject_id}")
async def attendance_status(
    subject_id: str,
    date: Optional[dt.date] = None,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(require_section(Section.ATTENDANCE)),
):
    repo = ctx.repositories_for(session).attendance
    return {"id": subject_id, "status": await repo.status_for(subject_id, date)}


@router.post("/attendance/mark", response_model=RecordOut)
async def mark_attendance(
    payload: AttendanceMarkRequest,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(require_section(Section.ATTENDANCE, mutate=True)),
):
    repo = ctx.repositories_for(session).attendance
    record_id = await repo.mark_attendance(
        payload.subject_id, payload.status, payload.kind, on=payload.date, class_name=payload.class_name
    )
    return RecordOut(id=record_id, record=await repo.get(record_id) or {})


# --- uploads & documents ---


@router.post("/exams/{exam_id}/paper", response_model=RecordOut)
async def upload_exam_paper(
    exam_id: str,
    file: UploadFile = File(...),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    repo = ctx.repositories_for(session).exams
    await repo.upload_file(await file.read(), field="paper", record_id=exam_id, suffix="pdf")
    return RecordOut(id=exam_id, record=await repo.get(exam_id) or {})


@router.post("/{collection}/{record_id}/photo", response_model=RecordOut)
async def upload_photo(
    collection: str,
    record_id: str,
    file: UploadFile = File(...),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    if collection not in PHOTO_COLLECTIONS:
        raise NotFoundError(f"{collection} has no photos")
    repo = ctx.repositories_for(session).by_collection(collection)
    suffix = (file.filename or "photo.jpg").rsplit(".", 1)[-1]
    await repo.upload_file(await file.read(), field="photo", record_id=record_id, suffix=suffix)
    return RecordOut(id=record_id, record=await repo.get(record_id) or {})


@router.post("/reports/{kind}/{record_id}", response_model=ReportOut)
async def generate_report(
    kind: str,
    record_id: str,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    url = await ctx.reports_for(session).generate(kind, record_id)
    return ReportOut(kind=kind, url=url)


# --- generic collections ---


@router.get("/{collection}", response_model=RecordsOut)
async def list_records(
    collection: str,
    search: str = "",
    class_name: Optional[str] = None,
    role: Optional[str] = None,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    repo = ctx.repositories_for(session).by_collection(_known_collection(collection))
    items = await repo.search(search, class_name=class_name, role=role)
    return RecordsOut(version=repo.version, items=items)


@router.post("/{collection}", response_model=RecordOut, status_code=status.HTTP_201_CREATED)
async def create_record(
    collection: str,
    fields: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    repo = ctx.repositories_for(session).by_collection(_known_collection(collection))
    record_id = await repo.create(fields)
    return RecordOut(id=record_id, record=await repo.get(record_id) or {})


@router.get("/{collection}/{record_id}", response_model=RecordOut)
async def read_record(
    collection: str,
    record_id: str,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    repo = ctx.repositories_for(session).by_collection(_known_collection(collection))
    record = await repo.get(record_id)
    if record is None:
        raise NotFoundError(f"{collection}/{record_id} not found")
    return RecordOut(id=record_id, record=record)


@router.patch("/{collection}/{record_id}", response_model=RecordOut)
async def update_record(
    collection: str,
    record_id: str,
    fields: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    repo = ctx.repositories_for(session).by_collection(_known_collection(collection))
    record = await repo.update(record_id, fields)
    return RecordOut(id=record_id, record=record)


@router.delete("/{collection}/{record_id}", response_model=MessageOut)
async def delete_record(
    collection: str,
    record_id: str,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_current_session),
):
    repo = ctx.repositories_for(session).by_collection(_known_collection(collection))
    removed = await repo.delete(record_id)
    return MessageOut(message="Deleted" if removed else "Already deleted")
