"""Printable documents: student ID cards, fee receipts and report cards.

Rendering is pure (record in, HTML out); the share sink turns the markup into a
downloadable file. Nothing generated here is written back to the document store.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .collaborators import ShareSink
from .errors import InvalidInputError, NotFoundError
from .repositories import Repositories


logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

TEMPLATES = {
    "id_card": "id_card.html",
    "receipt": "receipt.html",
    "report_card": "report_card.html",
}

MARKS_PER_EXAM = 100


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def money(value: Any) -> str:
    amount = _number(value)
    return str(int(amount)) if amount.is_integer() else f"{amount:.2f}".rstrip("0").rstrip(".")


def long_date(value: Any) -> str:
    if isinstance(value, date):
        day = value
    else:
        try:
            day = date.fromisoformat(str(value)[:10])
        except ValueError:
            return str(value or "")
    return day.strftime("%a %b %d %Y")


@dataclass(frozen=True)
class ReportCard:
    student_id: str
    total: float
    count: int
    average: float
    max_total: int
    rows: list[dict[str, Any]] = field(default_factory=list)


def summarize_marks(student_id: str, marks: Iterable[dict[str, Any]]) -> ReportCard:
    rows = [m for m in marks if m.get("studentId") == student_id]
    total = sum(_number(m.get("marks")) for m in rows)
    count = len(rows)
    average = total / count if count else 0.0
    return ReportCard(
        student_id=student_id,
        total=total,
        count=count,
        average=average,
        max_total=count * MARKS_PER_EXAM,
        rows=rows,
    )


def build_environment(templates_dir: str = TEMPLATES_DIR) -> Environment:
    env = Environment(
        loader=FileSystemLoader(templates_dir),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["money"] = money
    env.filters["long_date"] = long_date
    return env


class ReportGenerator:
    def __init__(self, sink: ShareSink, env: Environment | None = None):
        self.sink = sink
        self.env = env or build_environment()

    def render(self, kind: str, **context: Any) -> str:
        template_name = TEMPLATES.get(kind)
        if template_name is None:
            raise InvalidInputError(f"Unknown document kind: {kind}")
        return self.env.get_template(template_name).render(**context)

    async def publish(self, markup: str) -> str:
        handle = await self.sink.render_to_file(markup)
        return await self.sink.share(handle)


class ReportService:
    """Loads the records a document needs through the role-gated repositories."""

    def __init__(self, repositories: Repositories, generator: ReportGenerator):
        self.repositories = repositories
        self.generator = generator

    async def render(self, kind: str, record_id: str) -> str:
        if kind == "id_card":
            student = await self.repositories.students.get(record_id)
            if student is None:
                raise NotFoundError(f"Student {record_id} not found")
            return self.generator.render(kind, student=student)
        if kind == "receipt":
            payment = await self.repositories.payments.get(record_id)
            if payment is None:
                raise NotFoundError(f"Payment {record_id} not found")
            return self.generator.render(kind, payment=payment)
        if kind == "report_card":
            card = summarize_marks(record_id, await self.repositories.marks.list())
            return self.generator.render(kind, card=card)
        raise InvalidInputError(f"Unknown document kind: {kind}")

    async def generate(self, kind: str, record_id: str) -> str:
        markup = await self.render(kind, record_id)
        url = await self.generator.publish(markup)
        logger.info(f"Generated {kind} for {record_id}: {url}")
        return url
