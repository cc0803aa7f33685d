import logging
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional

from pydantic import ValidationError

from .collaborators import BlobStore, DocumentStore
from .errors import CollaboratorError, InvalidInputError, NotFoundError
from .policy import COLLECTION_SECTIONS, Access, require_mutation, require_view
from .schemas import ENTITY_SCHEMAS, EntityFields, SchoolSettings
from .session import Session


logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, int], None]

# Fields matched by the free-text search box of each screen.
SEARCH_FIELDS: dict[str, tuple[str, ...]] = {
    "students": ("name", "rollNo"),
    "teachers": ("name", "subject"),
    "staff": ("name", "role"),
    "feeStructures": ("feeType",),
    "payments": ("studentId", "date"),
    "exams": ("subject", "date"),
    "marks": ("studentId", "examId"),
    "salaries": ("teacherId", "date"),
    "attendance": ("subjectId", "date"),
}

ALL_CLASSES = "All"


def filter_records(
    records: Iterable[dict[str, Any]],
    search: str = "",
    fields: Iterable[str] = ("name",),
    class_name: Optional[str] = None,
    **equals: Any,
) -> List[dict[str, Any]]:
    """Case-insensitive substring search over ``fields`` plus optional class/equality filters."""
    needle = (search or "").strip().lower()
    fields = tuple(fields)
    wanted_class = None if class_name in (None, "", ALL_CLASSES) else str(class_name).lower()
    result = []
    for record in records:
        if wanted_class is not None and str(record.get("class") or "").lower() != wanted_class:
            continue
        if any(str(record.get(k, "")).lower() != str(v).lower() for k, v in equals.items() if v not in (None, "")):
            continue
        if needle and not any(needle in str(record.get(f) or "").lower() for f in fields):
            continue
        result.append(record)
    return result


def _describe(exc: ValidationError) -> str:
    names = []
    for error in exc.errors():
        loc = error.get("loc") or ("?",)
        name = str(loc[0])
        if name not in names:
            names.append(name)
    return f"Missing or invalid fields: {', '.join(names)}"


def validate_fields(schema: type[EntityFields], fields: dict[str, Any]) -> dict[str, Any]:
    try:
        return schema.model_validate(fields).to_document()
    except ValidationError as exc:
        raise InvalidInputError(_describe(exc)) from exc


class ChangeFeed:
    """Per-collection version counters shared by every repository of the process."""

    def __init__(self):
        self._versions: dict[str, int] = {}
        self._listeners: dict[str, list[ChangeListener]] = {}

    def version(self, collection: str) -> int:
        return self._versions.get(collection, 0)

    def subscribe(self, collection: str, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.setdefault(collection, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(collection, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def bump(self, collection: str) -> int:
        version = self._versions.get(collection, 0) + 1
        self._versions[collection] = version
        for listener in list(self._listeners.get(collection, [])):
            listener(collection, version)
        return version


class Repository:
    """List/create/update/delete over one document collection, gated by the session role."""

    def __init__(
        self,
        collection: str,
        session: Session,
        store: DocumentStore,
        feed: ChangeFeed,
        blobs: Optional[BlobStore] = None,
        blob_prefix: Optional[str] = None,
    ):
        self.collection = collection
        self.section = COLLECTION_SECTIONS[collection]
        self.schema = ENTITY_SCHEMAS.get(collection)
        self.session = session
        self.store = store
        self.feed = feed
        self.blobs = blobs
        self.blob_prefix = blob_prefix

    @property
    def version(self) -> int:
        return self.feed.version(self.collection)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        return self.feed.subscribe(self.collection, listener)

    async def list(self, filters: Optional[dict[str, Any]] = None) -> List[dict[str, Any]]:
        require_view(self.session.role, self.section)
        return await self.store.list(self.collection, filters)

    async def search(self, text: str = "", class_name: Optional[str] = None, **equals: Any) -> List[dict[str, Any]]:
        records = await self.list()
        return filter_records(
            records, text, SEARCH_FIELDS.get(self.collection, ("name",)), class_name=class_name, **equals
        )

    async def get(self, record_id: str) -> Optional[dict[str, Any]]:
        require_view(self.session.role, self.section)
        return await self.store.get(self.collection, record_id)

    async def create(self, fields: dict[str, Any]) -> str:
        require_mutation(self.session.role, self.section)
        document = self._validate(fields)
        record_id = await self.store.add(self.collection, document)
        self.feed.bump(self.collection)
        return record_id

    async def update(self, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        require_mutation(self.session.role, self.section)
        existing = await self.store.get(self.collection, record_id)
        if existing is None:
            raise NotFoundError(f"{self.collection}/{record_id} not found")
        merged = {**existing, **fields}
        merged.pop("id", None)
        document = self._validate(merged)
        await self.store.set(self.collection, record_id, document)
        self.feed.bump(self.collection)
        return {**document, "id": record_id}

    async def delete(self, record_id: str) -> bool:
        """Returns False when the record was already gone."""
        require_mutation(self.session.role, self.section)
        existing = await self.store.get(self.collection, record_id)
        if existing is None:
            logger.info(f"Delete of missing {self.collection}/{record_id} treated as done")
            return False
        try:
            await self.store.delete(self.collection, record_id)
        except CollaboratorError:
            if await self.store.get(self.collection, record_id) is not None:
                raise
            logger.warning(f"Delete of {self.collection}/{record_id} errored but the record is gone")
        self.feed.bump(self.collection)
        return True

    async def upload_file(
        self, data: bytes, field: str, record_id: Optional[str] = None, suffix: str = "jpg"
    ) -> str:
        require_mutation(self.session.role, self.section)
        if self.blobs is None or not self.blob_prefix:
            raise InvalidInputError(f"{self.collection} does not accept uploads")
        if not data:
            raise InvalidInputError("Empty upload")
        if record_id is not None and await self.store.get(self.collection, record_id) is None:
            raise NotFoundError(f"{self.collection}/{record_id} not found")
        path = f"{self.blob_prefix}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}.{suffix.lstrip('.')}"
        handle = await self.blobs.upload(path, data)
        url = await self.blobs.get_url(handle)
        if record_id is not None:
            await self.update(record_id, {field: url})
        return url

    def _validate(self, fields: dict[str, Any]) -> dict[str, Any]:
        if self.schema is None:
            return dict(fields)
        return validate_fields(self.schema, fields)


ATTENDANCE_STATUSES = ("present", "absent")
ATTENDANCE_KINDS = ("student", "teacher")


class AttendanceRepository(Repository):
    """Attendance records keyed by (subjectId, date); one record per pair."""

    def __init__(self, session: Session, store: DocumentStore, feed: ChangeFeed):
        super().__init__("attendance", session, store, feed)

    async def list(self, filters: Optional[dict[str, Any]] = None) -> List[dict[str, Any]]:
        view = require_view(self.session.role, self.section)
        records = await self.store.list(self.collection, filters)
        if view.access == Access.OWN:
            own_id = self.session.linked_id
            records = [r for r in records if own_id is not None and r.get("subjectId") == own_id]
        return records

    async def get(self, record_id: str) -> Optional[dict[str, Any]]:
        view = require_view(self.session.role, self.section)
        record = await self.store.get(self.collection, record_id)
        if record is not None and view.access == Access.OWN and record.get("subjectId") != self.session.linked_id:
            return None
        return record

    async def list_for_date(self, on: Optional[date] = None) -> List[dict[str, Any]]:
        return await self.list({"date": (on or date.today()).isoformat()})

    async def status_for(self, subject_id: str, on: Optional[date] = None) -> str:
        day = (on or date.today()).isoformat()
        for record in await self.list({"date": day}):
            if record.get("subjectId") == subject_id:
                return record.get("status", "absent")
        return "absent"

    async def mark_attendance(
        self,
        subject_id: str,
        status: str,
        kind: str = "student",
        on: Optional[date] = None,
        class_name: Optional[str] = None,
    ) -> str:
        require_mutation(self.session.role, self.section)
        if not subject_id:
            raise InvalidInputError("Attendance requires an id")
        if status not in ATTENDANCE_STATUSES:
            raise InvalidInputError(f"Invalid attendance status: {status}")
        if kind not in ATTENDANCE_KINDS:
            raise InvalidInputError(f"Invalid attendance type: {kind}")
        day = (on or date.today()).isoformat()

        existing = await self.store.list(self.collection, {"subjectId": subject_id, "date": day})
        if existing:
            record_id = existing[0]["id"]
            await self.store.set(self.collection, record_id, {"status": status})
        else:
            record_id = await self.store.add(
                self.collection,
                {
                    "subjectId": subject_id,
                    "date": day,
                    "status": status,
                    "type": kind,
                    "class": class_name if kind == "student" else None,
                },
            )
        self.feed.bump(self.collection)
        logger.info(f"Attendance {subject_id} on {day}: {status}")
        return record_id


SETTINGS_DOC_ID = "school"


class SettingsRepository(Repository):
    """The single ``settings/school`` document; readable by all, writable by admins."""

    def __init__(self, session: Session, store: DocumentStore, feed: ChangeFeed, blobs: Optional[BlobStore] = None):
        super().__init__("settings", session, store, feed, blobs=blobs, blob_prefix="school-logo")

    async def load(self) -> dict[str, Any]:
        require_view(self.session.role, self.section)
        stored = await self.store.get(self.collection, SETTINGS_DOC_ID) or {}
        stored.pop("id", None)
        try:
            return SchoolSettings.model_validate(stored).to_document()
        except ValidationError:
            logger.warning("Stored settings are invalid, falling back to defaults")
            return SchoolSettings().to_document()

    async def save(self, fields: dict[str, Any]) -> dict[str, Any]:
        require_mutation(self.session.role, self.section)
        current = await self.load()
        document = validate_fields(SchoolSettings, {**current, **fields})
        await self.store.set(self.collection, SETTINGS_DOC_ID, document)
        self.feed.bump(self.collection)
        return document

    async def upload_logo(self, data: bytes, suffix: str = "jpg") -> dict[str, Any]:
        url = await self.upload_file(data, field="logoUrl", suffix=suffix)
        return await self.save({"logoUrl": url})


@dataclass
class Repositories:
    students: Repository
    teachers: Repository
    staff: Repository
    fee_structures: Repository
    payments: Repository
    exams: Repository
    marks: Repository
    salaries: Repository
    attendance: AttendanceRepository
    settings: SettingsRepository

    def by_collection(self, collection: str) -> Repository:
        for repo in vars(self).values():
            if repo.collection == collection:
                return repo
        raise NotFoundError(f"Unknown collection: {collection}")


def build_repositories(
    session: Session, store: DocumentStore, feed: ChangeFeed, blobs: Optional[BlobStore] = None
) -> Repositories:
    def repo(collection: str, blob_prefix: Optional[str] = None) -> Repository:
        return Repository(collection, session, store, feed, blobs=blobs, blob_prefix=blob_prefix)

    return Repositories(
        students=repo("students", "photos"),
        teachers=repo("teachers", "teacher-photos"),
        staff=repo("staff", "staff-photos"),
        fee_structures=repo("feeStructures"),
        payments=repo("payments"),
        exams=repo("exams", "exam-papers"),
        marks=repo("marks"),
        salaries=repo("salaries"),
        attendance=AttendanceRepository(session, store, feed),
        settings=SettingsRepository(session, store, feed, blobs=blobs),
    )
