"""
Content parsing module.

Turns decoded portal pages into dataclass records: the bus reservation list
and booking calendar, the registrar student profile and timetable.
"""

from cmru_api.parser.bus import (
    AvailableBus,
    AvailableBusData,
    ParsedSchedule,
    ScheduleReservation,
    parse_available_buses,
    parse_schedule,
    parse_schedule_date,
)
from cmru_api.parser.registrar import (
    CourseSchedule,
    StudentInfo,
    TimetableData,
    parse_student_info,
    parse_timetable,
)

__all__ = [
    "AvailableBus",
    "AvailableBusData",
    "ParsedSchedule",
    "ScheduleReservation",
    "parse_available_buses",
    "parse_schedule",
    "parse_schedule_date",
    "CourseSchedule",
    "StudentInfo",
    "TimetableData",
    "parse_student_info",
    "parse_timetable",
]
