"""Single capability table consulted by every screen and repository.

``compose_sections`` decides what a role sees; ``require_view`` and
``require_mutation`` re-check the same table at call time.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from .errors import PolicyError
from .models import Role


class Section(str, enum.Enum):
    HOME = "home"
    STUDENTS = "students"
    TEACHERS = "teachers"
    STAFF = "staff"
    FEES = "fees"
    ATTENDANCE = "attendance"
    EXAMS = "exams"
    SETTINGS = "settings"


class Access(str, enum.Enum):
    FULL = "full"
    OWN = "own"
    READ_ONLY = "read_only"
    DENIED = "denied"


@dataclass(frozen=True)
class Capability:
    view: dict[Role, Access]
    mutate: frozenset[Role]


_ALL_ROLES = tuple(Role)
_STAFF_ROLES = (Role.ADMIN, Role.TEACHER)

CAPABILITIES: dict[Section, Capability] = {
    Section.HOME: Capability(
        view={role: Access.FULL for role in _ALL_ROLES},
        mutate=frozenset(),
    ),
    Section.STUDENTS: Capability(
        view={role: Access.FULL for role in _STAFF_ROLES},
        mutate=frozenset(_STAFF_ROLES),
    ),
    Section.TEACHERS: Capability(
        view={Role.ADMIN: Access.FULL},
        mutate=frozenset({Role.ADMIN}),
    ),
    Section.STAFF: Capability(
        view={Role.ADMIN: Access.FULL},
        mutate=frozenset({Role.ADMIN}),
    ),
    Section.FEES: Capability(
        view={role: Access.FULL for role in _STAFF_ROLES},
        mutate=frozenset(_STAFF_ROLES),
    ),
    Section.ATTENDANCE: Capability(
        view={
            Role.ADMIN: Access.FULL,
            Role.TEACHER: Access.FULL,
            Role.STUDENT: Access.OWN,
            Role.PARENT: Access.OWN,
        },
        mutate=frozenset(_STAFF_ROLES),
    ),
    Section.EXAMS: Capability(
        view={role: Access.FULL for role in _STAFF_ROLES},
        mutate=frozenset(_STAFF_ROLES),
    ),
    Section.SETTINGS: Capability(
        view={
            Role.ADMIN: Access.FULL,
            Role.TEACHER: Access.READ_ONLY,
            Role.STUDENT: Access.READ_ONLY,
            Role.PARENT: Access.READ_ONLY,
        },
        mutate=frozenset({Role.ADMIN}),
    ),
}

SECTION_ORDER = (
    Section.HOME,
    Section.STUDENTS,
    Section.TEACHERS,
    Section.STAFF,
    Section.FEES,
    Section.ATTENDANCE,
    Section.EXAMS,
    Section.SETTINGS,
)

# Backing document collections per section.
COLLECTION_SECTIONS: dict[str, Section] = {
    "students": Section.STUDENTS,
    "teachers": Section.TEACHERS,
    "salaries": Section.TEACHERS,
    "staff": Section.STAFF,
    "feeStructures": Section.FEES,
    "payments": Section.FEES,
    "exams": Section.EXAMS,
    "marks": Section.EXAMS,
    "attendance": Section.ATTENDANCE,
    "settings": Section.SETTINGS,
}


@dataclass(frozen=True)
class SectionView:
    section: Section
    access: Access
    can_mutate: bool

    @property
    def visible(self) -> bool:
        return self.access != Access.DENIED


def section_view(role: Optional[Role], section: Section) -> SectionView:
    capability = CAPABILITIES[section]
    if role is None:
        return SectionView(section=section, access=Access.DENIED, can_mutate=False)
    access = capability.view.get(role, Access.DENIED)
    can_mutate = access != Access.DENIED and role in capability.mutate
    return SectionView(section=section, access=access, can_mutate=can_mutate)


def compose_sections(role: Optional[Role], include_denied: bool = False) -> list[SectionView]:
    views = [section_view(role, section) for section in SECTION_ORDER]
    if include_denied:
        return views
    return [view for view in views if view.visible]


def require_view(role: Optional[Role], section: Section) -> SectionView:
    view = section_view(role, section)
    if not view.visible:
        raise PolicyError(f"Access denied to {section.value}")
    return view


def require_mutation(role: Optional[Role], section: Section) -> SectionView:
    view = section_view(role, section)
    if not view.can_mutate:
        who = role.value if role else "anonymous"
        raise PolicyError(f"Role '{who}' cannot modify {section.value}")
    return view


# Roles anyone may pick when creating their own account.
SELF_SIGNUP_ROLES = frozenset({Role.STUDENT, Role.PARENT})


def require_account_creation(actor: Optional[Role], role: Role) -> None:
    """Only admins create admin or teacher accounts; ``actor`` is None for self-signup."""
    if role in SELF_SIGNUP_ROLES or actor == Role.ADMIN:
        return
    raise PolicyError(f"Only an administrator can create {role.value} accounts")
