"""Registrar page parsers (``student.asp`` and ``time_table.asp``)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

try:
    import lxml  # noqa: F401 – used as BeautifulSoup parser backend
    _BS4_PARSER = "lxml"
except ImportError:
    _BS4_PARSER = "html.parser"

_STUDENT_RE = re.compile(r"(\d{8})\s*:\s*(.+)")
_SEMESTER_RE = re.compile(r"<b>(\d+)</b>", re.IGNORECASE)
_COURSE_CODE_RE = re.compile(r"^[A-Z]+\s+\d+-\d+$")
_ROOM_RE = re.compile(r"([A-Z]+\d+-\d+)")
_COURSE_HEADER_BGCOLOR = "#F6F6FF"

# (label substrings, StudentInfo attribute); first hit wins
_STUDENT_FIELDS = (
    (("สถานภาพ", "status"), "status"),
    (("คณะ", "faculty"), "faculty"),
    (("ภาควิชา", "department"), "department"),
    (("สาขาวิชา", "major"), "major"),
    (("อ. ที่ปรึกษา", "อาจารย์ที่ปรึกษา", "advisor"), "advisor_name"),
)


@dataclass
class StudentInfo:
    student_id: str = ""
    full_name: str = ""
    thai_name: str = ""
    english_name: str | None = None
    faculty: str | None = None
    major: str | None = None
    department: str | None = None
    year: str | None = None
    status: str | None = None
    advisor_name: str | None = None
    has_outstanding_payment: bool = False


@dataclass
class CourseSchedule:
    course_code: str
    course_name: str
    section: str | None = None
    credits: str | None = None
    instructor: str | None = None
    schedule: str | None = None
    room: str | None = None


@dataclass
class TimetableData:
    student_id: str | None = None
    student_name: str | None = None
    semester: str | None = None
    academic_year: str | None = None
    courses: list[CourseSchedule] = field(default_factory=list)


def parse_student_info(html: str) -> StudentInfo:
    soup = BeautifulSoup(html, _BS4_PARSER)
    info = StudentInfo()

    # "<id> : <name>" in the second cell of the username banner
    banner = soup.select("table.username td")
    banner_text = banner[1].get_text(strip=True) if len(banner) > 1 else ""
    student_id, sep, name = banner_text.partition(" : ")
    if sep and student_id.strip() and name.strip():
        info.student_id = student_id.strip()
        info.full_name = info.thai_name = name.strip()
    elif banner_text:
        info.full_name = info.thai_name = banner_text

    for row in soup.find_all("tr"):
        header = row.select_one("td.headerdetail, font.headerdetail")
        data = row.select_one("td.normaldetail, font.normaldetail")
        if header is None or data is None:
            continue
        label = header.get_text(strip=True)
        value = data.get_text(strip=True)
        if not label or not value:
            continue
        lowered = label.lower()
        for needles, attr in _STUDENT_FIELDS:
            if any(n in label or n in lowered for n in needles):
                setattr(info, attr, value)
                break

    body = soup.body.get_text() if soup.body else soup.get_text()
    info.has_outstanding_payment = "มียอดเงินค้างชำระ" in body or "outstanding" in body.lower()
    return info


def _cell_text(cell) -> str:
    font = cell.select_one("font.normaldetail")
    return font.get_text(strip=True) if font else ""


def _find_course_table(soup):
    for table in soup.find_all("table"):
        header = table.find("tr", attrs={"bgcolor": _COURSE_HEADER_BGCOLOR})
        if header is not None and len(header.find_all("td")) == 6:
            return table
    return None


def parse_timetable(html: str) -> TimetableData:
    """
    Parse the class timetable.

    The course table is the first table whose ``#F6F6FF`` header row has six
    cells.  Only rows with a well-formed course code (``"GE 1001-01"``) are
    kept; the room is pulled out of the schedule text.
    """
    soup = BeautifulSoup(html, _BS4_PARSER)
    result = TimetableData()

    m = _STUDENT_RE.search(" ".join(td.get_text() for td in soup.select("table.username td")))
    if m:
        result.student_id = m.group(1).strip()
        result.student_name = m.group(2).strip()

    for option in soup.select("select[name=ACADYEAR] option[selected]"):
        result.academic_year = option.get("value")

    m = _SEMESTER_RE.search(str(soup.body or soup))
    if m:
        result.semester = m.group(1)

    table = _find_course_table(soup)
    if table is None:
        return result

    for row in table.find_all("tr"):
        if row.get("bgcolor") == _COURSE_HEADER_BGCOLOR or row.find("table") is not None:
            continue
        cells = row.find_all("td", recursive=False)
        if len(cells) != 6:
            continue
        code, section, name, credits, instructor, schedule = map(_cell_text, cells)
        if not _COURSE_CODE_RE.match(code):
            continue
        room = _ROOM_RE.search(schedule)
        result.courses.append(CourseSchedule(
            course_code=code,
            course_name=name,
            section=section or None,
            credits=credits or None,
            instructor=instructor or None,
            schedule=schedule or None,
            room=room.group(1) if room else None,
        ))
    return result
