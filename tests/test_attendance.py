from datetime import date

import pytest

from school_admin.errors import InvalidInputError, PolicyError


pytestmark = pytest.mark.anyio

DAY = date(2024, 6, 3)


async def test_marking_twice_keeps_one_record_with_latest_status(context, make_session):
    teacher = await make_session("teacher")
    attendance = context.repositories_for(teacher).attendance

    first = await attendance.mark_attendance("stu-1", "present", "student", on=DAY, class_name="Class 1")
    second = await attendance.mark_attendance("stu-1", "absent", "student", on=DAY, class_name="Class 1")

    records = [r for r in await attendance.list_for_date(DAY) if r["subjectId"] == "stu-1"]
    assert first == second
    assert len(records) == 1
    assert records[0]["status"] == "absent"
    assert records[0]["class"] == "Class 1"


async def test_same_subject_on_another_day_gets_its_own_record(context, make_session):
    admin = await make_session("admin")
    attendance = context.repositories_for(admin).attendance

    await attendance.mark_attendance("stu-1", "present", on=DAY)
    await attendance.mark_attendance("stu-1", "absent", on=date(2024, 6, 4))

    assert len(await attendance.list()) == 2


async def test_teacher_attendance_has_no_class(context, make_session):
    admin = await make_session("admin")
    attendance = context.repositories_for(admin).attendance

    await attendance.mark_attendance("tch-9", "present", "teacher", on=DAY, class_name="Class 4")

    (record,) = await attendance.list_for_date(DAY)
    assert record["type"] == "teacher"
    assert record["class"] is None
    assert record["date"] == "2024-06-03"


async def test_unmarked_subject_reads_as_absent(context, make_session):
    teacher = await make_session("teacher")
    attendance = context.repositories_for(teacher).attendance

    assert await attendance.status_for("stu-2", DAY) == "absent"
    await attendance.mark_attendance("stu-2", "present", on=DAY)
    assert await attendance.status_for("stu-2", DAY) == "present"


async def test_invalid_status_is_rejected(context, make_session):
    teacher = await make_session("teacher")
    with pytest.raises(InvalidInputError):
        await context.repositories_for(teacher).attendance.mark_attendance("stu-1", "late", on=DAY)


async def test_students_and_parents_cannot_mark(context, make_session):
    for role in ("student", "parent"):
        session = await make_session(role)
        with pytest.raises(PolicyError):
            await context.repositories_for(session).attendance.mark_attendance("stu-1", "present", on=DAY)


async def test_personal_view_only_shows_linked_records(context, make_session):
    teacher = await make_session("teacher")
    marker = context.repositories_for(teacher).attendance
    await marker.mark_attendance("stu-1", "present", on=DAY)
    await marker.mark_attendance("stu-2", "absent", on=DAY)

    student = await make_session("student", linked_id="stu-1")
    parent = await make_session("parent", linked_id="stu-2")
    unlinked = await make_session("student")

    assert [r["subjectId"] for r in await context.repositories_for(student).attendance.list_for_date(DAY)] == ["stu-1"]
    assert [r["subjectId"] for r in await context.repositories_for(parent).attendance.list_for_date(DAY)] == ["stu-2"]
    assert await context.repositories_for(unlinked).attendance.list_for_date(DAY) == []
    assert len(await marker.list_for_date(DAY)) == 2


async def test_personal_get_hides_other_subjects(context, make_session):
    teacher = await make_session("teacher")
    marker = context.repositories_for(teacher).attendance
    own_id = await marker.mark_attendance("stu-1", "present", on=DAY)
    other_id = await marker.mark_attendance("stu-2", "present", on=DAY)

    student = context.repositories_for(await make_session("student", linked_id="stu-1")).attendance

    assert (await student.get(own_id))["subjectId"] == "stu-1"
    assert await student.get(other_id) is None
    assert (await marker.get(other_id))["subjectId"] == "stu-2"
