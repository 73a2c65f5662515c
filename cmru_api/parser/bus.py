"""
Bus portal page parsers.

``parse_schedule`` reads the member reservation list (``/users/schedule/showall``)
and ``parse_available_buses`` the booking calendar (``/schedule/showevent``),
whose schedule lives in a FullCalendar ``events: [...]`` script literal rather
than in markup.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum

from bs4 import BeautifulSoup

try:
    import lxml  # noqa: F401 – used as BeautifulSoup parser backend
    _BS4_PARSER = "lxml"
except ImportError:
    _BS4_PARSER = "html.parser"


class DayOfWeek(str, Enum):
    SUNDAY = "วันอาทิตย์"
    MONDAY = "วันจันทร์"
    TUESDAY = "วันอังคาร"
    WEDNESDAY = "วันพุธ"
    THURSDAY = "วันพฤหัสบดี"
    FRIDAY = "วันศุกร์"
    SATURDAY = "วันเสาร์"


class ConfirmationStatus(str, Enum):
    CONFIRMED = "ยืนยันแล้ว"
    OVERTIME = "เกินเวลายืนยัน"
    PENDING = "รอยืนยัน"


# Abbreviations used in the departure column
_DAY_ABBREVIATIONS = {
    "อา": DayOfWeek.SUNDAY,
    "จ": DayOfWeek.MONDAY,
    "อ": DayOfWeek.TUESDAY,
    "พ": DayOfWeek.WEDNESDAY,
    "พฤ": DayOfWeek.THURSDAY,
    "ศ": DayOfWeek.FRIDAY,
    "ส": DayOfWeek.SATURDAY,
}

_THAI_MONTHS = {
    "ม.ค.": 1, "ก.พ.": 2, "มี.ค.": 3, "เม.ย.": 4, "พ.ค.": 5, "มิ.ย.": 6,
    "ก.ค.": 7, "ส.ค.": 8, "ก.ย.": 9, "ต.ค.": 10, "พ.ย.": 11, "ธ.ค.": 12,
}

# Destination type codes of the booking endpoint
DESTINATIONS = {1: "แม่ริม", 2: "เวียงบัว"}

_TICKET_URL_RE = re.compile(r"openNewWindow\('([^']+)'\)")
_TICKET_ID_RE = re.compile(r"/users/schedule/showticket/(\d+)")
_CONFIRM_RE = re.compile(r"confirmReserv\('([^']+)'\)")
_UNCONFIRM_RE = re.compile(r"unconfirmReserv\('([^']+)'\)")
_DELETE_RE = re.compile(r"confirm\('([^']+)'\)")
_DELETE_ID_RE = re.compile(r"/delt/(\d+)")
_TIME_RE = re.compile(r"(\d+)\.(\d+)")
_DATE_RE = re.compile(r"(\d+)\s+(\S+)\s+(\d+)")

_EVENTS_RE = re.compile(r"events:\s*\[(.+)\]\s*\n")
_EVENT_RE = re.compile(
    r"\{title:\s*'([^']+)',\s*start:\s*'([^']+)',\s*schDate:\s*'([^']+)',"
    r"\s*SchId:\s*'(\d+)',\s*scd_type:\s*'(\d+)',\s*reservStatus:\s*'(\d*)',"
    r"\s*signinStatus:\s*'(\d*)',\s*classNames:\s*\['([^']+)'\]\}"
)


@dataclass
class Ticket:
    id: int | None
    has_qr_code: bool
    status: str


@dataclass
class Confirmation:
    is_confirmed: bool
    can_confirm: bool
    confirm_data: str | None
    can_cancel: bool
    unconfirm_data: str | None
    status: ConfirmationStatus


@dataclass
class ReservationActions:
    can_delete: bool
    delete_url: str | None = None
    reservation_id: int | None = None


@dataclass
class TravelStatus:
    has_completed: bool | None = None
    status: str | None = None


@dataclass
class ScheduleReservation:
    id: int
    ticket: Ticket
    destination: str
    departure_day: DayOfWeek
    departure_time: str           # "HH.MM"
    date: datetime | None
    confirmation: Confirmation
    actions: ReservationActions
    travel: TravelStatus


@dataclass
class ParsedSchedule:
    user_name: str
    total_reservations: int
    current_page: int
    total_pages: int
    reservations: list[ScheduleReservation] = field(default_factory=list)

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1

    def to_dict(self) -> dict:
        data = asdict(self)
        data.update(has_next_page=self.has_next_page, has_prev_page=self.has_prev_page)
        return data


@dataclass
class AvailableBus:
    id: int
    title: str
    destination: str
    destination_type: int
    departure: datetime | None
    departure_date: str
    can_reserve: bool
    requires_login: bool

    @property
    def is_reserved(self) -> bool:
        return not self.can_reserve


@dataclass
class AvailableBusData:
    current_month: str
    schedules: list[AvailableBus] = field(default_factory=list)

    @property
    def total_available(self) -> int:
        return len(self.schedules)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_available"] = self.total_available
        return data


def _int(text: str, default: int = 0) -> int:
    m = re.match(r"\s*(-?\d+)", text or "")
    return int(m.group(1)) if m else default


def _match(pattern: re.Pattern, value: str | None) -> str | None:
    m = pattern.search(value or "")
    return m.group(1) if m else None


def parse_thai_date(text: str, hour: int = 0, minute: int = 0) -> datetime | None:
    """``"14 ก.พ. 68"`` → ``datetime(2025, 2, 14)``.  Two-digit Buddhist-era years."""
    m = _DATE_RE.search(text.strip())
    if not m:
        return None
    month = _THAI_MONTHS.get(m.group(2))
    if month is None:
        return None
    year = int(m.group(3))
    if year < 100:
        year += 2500
    try:
        return datetime(year - 543, month, int(m.group(1)), hour, minute)
    except ValueError:
        return None


_SCHEDULE_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d")


def parse_schedule_date(text: str) -> date | None:
    """A calendar ``schDate`` (``2025-02-14`` or ``14/02/2025``) as a date."""
    for fmt in _SCHEDULE_DATE_FORMATS:
        try:
            return datetime.strptime(text.strip()[:10], fmt).date()
        except ValueError:
            continue
    return None


def _parse_departure(text: str) -> tuple[DayOfWeek, str, datetime | None]:
    parts = re.split(r"\s*,\s*", text.strip())
    abbr = parts[0].split()[0].rstrip(".") if parts[0] else ""
    day = _DAY_ABBREVIATIONS.get(abbr, DayOfWeek.MONDAY)
    m = _TIME_RE.search(parts[-1])
    hour, minute = (int(m.group(1)), int(m.group(2))) if m else (0, 0)
    date = parse_thai_date(parts[1], hour, minute) if len(parts) > 2 else None
    return day, f"{hour:02d}.{minute:02d}", date


def _parse_row(cells) -> ScheduleReservation:
    ticket_cell = cells[1]
    qr_link = ticket_cell.find("a")
    ticket_url = _match(_TICKET_URL_RE, qr_link.get("onclick") if qr_link else None)
    ticket_id = _match(_TICKET_ID_RE, ticket_url)
    ticket_id = int(ticket_id) if ticket_id else None
    has_qr = ticket_id is not None and ticket_cell.select_one("i.fa-qrcode") is not None
    if has_qr:
        ticket_status = qr_link.get_text(strip=True) or "รอเดินทาง"
    else:
        ticket_status = ticket_cell.get_text(strip=True) or "รอถึงเวลา"

    span = cells[2].find("span")
    destination = span.get_text(strip=True) if span else cells[2].get_text(strip=True)
    day, time_text, date = _parse_departure(cells[3].get_text(" ", strip=True))

    conf = cells[4]
    confirm_link = conf.select_one("a.badge-success")
    unconfirm_link = conf.select_one("a.badge-warning")
    delete_link = conf.select_one("a.badge-danger")
    delete_url = _match(_DELETE_RE, delete_link.get("onclick") if delete_link else None)
    delete_id = _match(_DELETE_ID_RE, delete_url)

    first_badge = conf.select_one(".badge")
    badge_text = first_badge.get_text(strip=True) if first_badge else ""
    if "ยืนยันแล้ว" in badge_text:
        status = ConfirmationStatus.CONFIRMED
    elif "เกินเวลา" in badge_text:
        status = ConfirmationStatus.OVERTIME
    else:
        status = ConfirmationStatus.PENDING

    travel = TravelStatus()
    travel_badge = cells[5].select_one(".badge")
    if travel_badge is not None:
        classes = travel_badge.get("class") or []
        if "badge-success" in classes:
            travel.has_completed = True
        elif "badge-danger" in classes:
            travel.has_completed = False
        travel.status = travel_badge.get_text(strip=True)

    return ScheduleReservation(
        id=_int(cells[0].get_text()),
        ticket=Ticket(ticket_id, has_qr, ticket_status),
        destination=destination,
        departure_day=day,
        departure_time=time_text,
        date=date,
        confirmation=Confirmation(
            is_confirmed=conf.select_one(".badge-success i.fa-check") is not None,
            can_confirm=confirm_link is not None,
            confirm_data=_match(_CONFIRM_RE, confirm_link.get("onclick") if confirm_link else None),
            can_cancel=unconfirm_link is not None,
            unconfirm_data=_match(_UNCONFIRM_RE, unconfirm_link.get("onclick") if unconfirm_link else None),
            status=status,
        ),
        actions=ReservationActions(
            can_delete=delete_link is not None,
            delete_url=delete_url,
            reservation_id=int(delete_id) if delete_id else None,
        ),
        travel=travel,
    )


def parse_schedule(html: str) -> ParsedSchedule:
    """Parse the reservation list page.  Rows with fewer than six cells are skipped."""
    soup = BeautifulSoup(html, _BS4_PARSER)

    user = soup.select_one("#alert-Top h4")
    total = soup.select_one(".pagination .title span")
    active = soup.select_one(".pagination .activex")
    pages = [
        _int(li.get_text(), -1)
        for li in soup.select(".pagination li.activex, .pagination li.numlink")
    ]
    pages = [p for p in pages if p >= 0]

    reservations = []
    for row in soup.select("table.table tbody tr"):
        cells = row.find_all("td")
        if len(cells) < 6:
            continue
        reservations.append(_parse_row(cells))

    return ParsedSchedule(
        user_name=user.get_text(strip=True) if user else "",
        total_reservations=_int(total.get_text()) if total else 0,
        current_page=_int(active.get_text(), 1) if active else 1,
        total_pages=max(pages) if pages else 1,
        reservations=reservations,
    )


def _parse_start(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None


def parse_available_buses(html: str) -> AvailableBusData:
    """Parse the booking calendar; schedules come back sorted by departure."""
    soup = BeautifulSoup(html, _BS4_PARSER)

    selected = soup.select_one("#sMonth option[selected]")
    current_month = selected.get("value", "") if selected else ""

    script = "\n".join(s.get_text() for s in soup.find_all("script"))
    schedules = []
    events = _EVENTS_RE.search(script)
    if events:
        for m in _EVENT_RE.finditer(events.group(1)):
            title, start, sch_date, sch_id, scd_type, reserv, signin = m.groups()[:7]
            dest_type = int(scd_type)
            schedules.append(AvailableBus(
                id=int(sch_id),
                title=title.strip(),
                destination=DESTINATIONS.get(dest_type, ""),
                destination_type=dest_type,
                departure=_parse_start(start),
                departure_date=sch_date,
                can_reserve=reserv == "1",
                requires_login=signin == "1",
            ))

    schedules.sort(key=lambda bus: bus.departure or datetime.max)
    return AvailableBusData(current_month=current_month, schedules=schedules)
