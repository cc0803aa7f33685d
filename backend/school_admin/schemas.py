import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import Role
from .policy import Access, Section


class EntityFields(BaseModel):
    """Stored document shape; attribute names are snake_case, stored keys camelCase."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class StudentFields(EntityFields):
    name: str = Field(min_length=1, max_length=255)
    class_name: str = Field(alias="class", min_length=1, max_length=64)
    photo: str = ""
    dob: str = ""
    section: str = ""
    roll_no: str = Field(default="", alias="rollNo")
    parent_name: str = Field(default="", alias="parentName")
    parent_phone: str = Field(default="", alias="parentPhone")
    address: str = ""
    aadhar: str = ""
    blood_group: str = Field(default="", alias="bloodGroup")
    emergency_contact: str = Field(default="", alias="emergencyContact")


class Timetable(BaseModel):
    monday: str = ""
    tuesday: str = ""
    wednesday: str = ""
    thursday: str = ""
    friday: str = ""


class TeacherFields(EntityFields):
    name: str = Field(min_length=1, max_length=255)
    subject: str = Field(min_length=1, max_length=128)
    salary: float = Field(gt=0)
    photo: str = ""
    contact: str = ""
    joining_date: Optional[dt.date] = Field(default=None, alias="joiningDate")
    timetable: Timetable = Field(default_factory=Timetable)


class StaffFields(EntityFields):
    name: str = Field(min_length=1, max_length=255)
    role: str = Field(min_length=1, max_length=128)
    salary: float = Field(gt=0)
    photo: str = ""
    contact: str = ""
    joining_date: Optional[dt.date] = Field(default=None, alias="joiningDate")
    schedule: str = ""


class FeeStructureFields(EntityFields):
    class_name: str = Field(alias="class", min_length=1, max_length=64)
    fee_type: str = Field(alias="feeType", min_length=1, max_length=128)
    amount: float = Field(gt=0)
    due_date: Optional[dt.date] = Field(default=None, alias="dueDate")


class PaymentFields(EntityFields):
    student_id: str = Field(alias="studentId", min_length=1)
    amount: float = Field(gt=0)
    date: dt.date
    mode: str = "Cash"


class ExamFields(EntityFields):
    class_name: str = Field(alias="class", min_length=1, max_length=64)
    subject: str = Field(min_length=1, max_length=128)
    date: dt.date
    paper: str = ""


class MarkFields(EntityFields):
    student_id: str = Field(alias="studentId", min_length=1)
    exam_id: str = Field(alias="examId", min_length=1)
    marks: float = Field(ge=0)
    total: float = Field(default=100, gt=0)


class SalaryFields(EntityFields):
    teacher_id: str = Field(alias="teacherId", min_length=1)
    amount: float = Field(gt=0)
    date: dt.date
    paid: bool = False


class AdminSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    allow_student_access: bool = Field(default=True, alias="allowStudentAccess")
    allow_parent_access: bool = Field(default=True, alias="allowParentAccess")


class SchoolSettings(EntityFields):
    theme: Literal["light", "dark"] = "light"
    notifications_enabled: bool = Field(default=True, alias="notificationsEnabled")
    admin_settings: AdminSettings = Field(default_factory=AdminSettings, alias="adminSettings")
    logo_url: str = Field(default="", alias="logoUrl")


ENTITY_SCHEMAS: dict[str, type[EntityFields]] = {
    "students": StudentFields,
    "teachers": TeacherFields,
    "staff": StaffFields,
    "feeStructures": FeeStructureFields,
    "payments": PaymentFields,
    "exams": ExamFields,
    "marks": MarkFields,
    "salaries": SalaryFields,
}


# --- HTTP payloads ---


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)


class SignupRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6)
    role: Role = Role.STUDENT


class AccountCreateRequest(SignupRequest):
    """Account created by an admin, optionally linked to the record it may see."""

    model_config = ConfigDict(populate_by_name=True)

    linked_id: Optional[str] = Field(default=None, alias="linkedId")


class AccountOut(BaseModel):
    uid: str
    email: str
    role: Role
    linked_id: Optional[str] = None


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    uid: str
    email: str
    role: Role


class SectionOut(BaseModel):
    section: Section
    access: Access
    can_mutate: bool


class MeOut(BaseModel):
    uid: str
    email: str
    role: Role
    greeting: str
    sections: list[SectionOut]


class RecordsOut(BaseModel):
    version: int
    items: list[dict[str, Any]]


class RecordOut(BaseModel):
    id: str
    record: dict[str, Any]


class AttendanceMarkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject_id: str = Field(alias="id", min_length=1)
    status: Literal["present", "absent"]
    kind: Literal["student", "teacher"] = "student"
    date: Optional[dt.date] = None
    class_name: Optional[str] = Field(default=None, alias="class")


class ReportOut(BaseModel):
    kind: str
    url: str


class MessageOut(BaseModel):
    message: str
