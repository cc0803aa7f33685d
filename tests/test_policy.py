import pytest

from school_admin.errors import PolicyError
from school_admin.models import Role
from school_admin.policy import (
    CAPABILITIES,
    Access,
    Section,
    compose_sections,
    require_mutation,
    require_view,
    section_view,
)


VIEW_ROLES = {
    Section.STUDENTS: {Role.ADMIN, Role.TEACHER},
    Section.TEACHERS: {Role.ADMIN},
    Section.STAFF: {Role.ADMIN},
    Section.FEES: {Role.ADMIN, Role.TEACHER},
    Section.EXAMS: {Role.ADMIN, Role.TEACHER},
    Section.ATTENDANCE: set(Role),
    Section.SETTINGS: set(Role),
}

MUTATE_ROLES = {
    Section.STUDENTS: {Role.ADMIN, Role.TEACHER},
    Section.TEACHERS: {Role.ADMIN},
    Section.STAFF: {Role.ADMIN},
    Section.FEES: {Role.ADMIN, Role.TEACHER},
    Section.EXAMS: {Role.ADMIN, Role.TEACHER},
    Section.ATTENDANCE: {Role.ADMIN, Role.TEACHER},
    Section.SETTINGS: {Role.ADMIN},
}


@pytest.mark.parametrize("section", list(VIEW_ROLES))
@pytest.mark.parametrize("role", list(Role))
def test_view_and_mutate_match_capability_table(section, role):
    view = section_view(role, section)
    assert view.visible == (role in VIEW_ROLES[section])
    assert view.can_mutate == (role in MUTATE_ROLES[section])


@pytest.mark.parametrize("role", list(Role))
def test_roles_outside_view_list_get_access_denied(role):
    composed = {view.section for view in compose_sections(role)}
    for section, allowed in VIEW_ROLES.items():
        if role not in allowed:
            assert section not in composed
            assert section_view(role, section).access == Access.DENIED
            with pytest.raises(PolicyError):
                require_view(role, section)


def test_admin_sees_every_section_in_order():
    sections = [view.section for view in compose_sections(Role.ADMIN)]
    assert sections == [
        Section.HOME,
        Section.STUDENTS,
        Section.TEACHERS,
        Section.STAFF,
        Section.FEES,
        Section.ATTENDANCE,
        Section.EXAMS,
        Section.SETTINGS,
    ]


def test_student_and_parent_get_own_attendance_and_read_only_settings():
    for role in (Role.STUDENT, Role.PARENT):
        views = {view.section: view for view in compose_sections(role)}
        assert list(views) == [Section.HOME, Section.ATTENDANCE, Section.SETTINGS]
        assert views[Section.ATTENDANCE].access == Access.OWN
        assert views[Section.SETTINGS].access == Access.READ_ONLY
        assert not any(view.can_mutate for view in views.values())


def test_teacher_settings_are_read_only():
    view = section_view(Role.TEACHER, Section.SETTINGS)
    assert view.access == Access.READ_ONLY
    assert not view.can_mutate


def test_unauthenticated_session_sees_nothing():
    assert compose_sections(None) == []
    assert all(view.access == Access.DENIED for view in compose_sections(None, include_denied=True))
    with pytest.raises(PolicyError):
        require_mutation(None, Section.FEES)


def test_require_mutation_allows_teacher_on_fees_and_rejects_student():
    assert require_mutation(Role.TEACHER, Section.FEES).can_mutate
    with pytest.raises(PolicyError):
        require_mutation(Role.STUDENT, Section.FEES)


def test_every_section_has_a_capability():
    assert set(CAPABILITIES) == set(Section)
