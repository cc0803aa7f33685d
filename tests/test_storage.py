import os

import pytest

from school_admin.collaborators import BlobHandle
from school_admin.errors import CollaboratorError, InvalidInputError, PolicyError
from school_admin.sharing import FileShareSink
from school_admin.storage import LocalBlobStore


pytestmark = pytest.mark.anyio


async def test_upload_then_url(tmp_path):
    blobs = LocalBlobStore(str(tmp_path), "http://cdn.local/")

    handle = await blobs.upload("photos/1.jpg", b"\xff\xd8jpeg")

    assert handle.size == 6
    assert (tmp_path / "photos" / "1.jpg").read_bytes() == b"\xff\xd8jpeg"
    assert await blobs.get_url(handle) == "http://cdn.local/static/uploads/photos/1.jpg"


async def test_upload_refuses_paths_outside_root(tmp_path):
    blobs = LocalBlobStore(str(tmp_path / "uploads"))
    with pytest.raises(InvalidInputError):
        await blobs.upload("../escape.txt", b"x")


async def test_url_for_missing_object(tmp_path):
    blobs = LocalBlobStore(str(tmp_path))
    with pytest.raises(CollaboratorError):
        await blobs.get_url(BlobHandle(path="photos/missing.jpg", size=0))


async def test_share_sink_writes_markup(tmp_path):
    sink = FileShareSink(str(tmp_path / "exports"), "http://testserver")

    handle = await sink.render_to_file("<html><body>hi</body></html>")

    assert os.path.exists(handle.path)
    assert await sink.share(handle) == handle.url
    assert handle.url.startswith("http://testserver/static/exports/")


async def test_exam_paper_upload_sets_paper_url(context, make_session):
    teacher = await make_session("teacher")
    exams = context.repositories_for(teacher).exams
    exam_id = await exams.create({"class": "Class 5", "subject": "History", "date": "2024-09-10"})

    url = await exams.upload_file(b"%PDF-1.4", field="paper", record_id=exam_id, suffix="pdf")

    assert url.startswith("http://testserver/static/uploads/exam-papers/")
    assert url.endswith(".pdf")
    assert (await exams.get(exam_id))["paper"] == url


async def test_logo_upload_requires_admin(context, make_session):
    admin = await make_session("admin")
    teacher = await make_session("teacher")

    saved = await context.repositories_for(admin).settings.upload_logo(b"png-bytes", suffix="png")
    assert saved["logoUrl"].startswith("http://testserver/static/uploads/school-logo/")

    with pytest.raises(PolicyError):
        await context.repositories_for(teacher).settings.upload_logo(b"png-bytes")


async def test_settings_defaults_and_admin_only_save(context, make_session):
    admin = await make_session("admin")
    parent = await make_session("parent")

    defaults = await context.repositories_for(parent).settings.load()
    assert defaults == {
        "theme": "light",
        "notificationsEnabled": True,
        "adminSettings": {"allowStudentAccess": True, "allowParentAccess": True},
        "logoUrl": "",
    }

    await context.repositories_for(admin).settings.save({"theme": "dark", "notificationsEnabled": False})
    loaded = await context.repositories_for(parent).settings.load()
    assert loaded["theme"] == "dark"
    assert loaded["notificationsEnabled"] is False

    with pytest.raises(PolicyError):
        await context.repositories_for(parent).settings.save({"theme": "light"})
