from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.fleet_models import Excavator, Timesheet
from schemas.timesheets import TimesheetUpsert
from services.errors import InvalidPeriod, LookupFailure, NotFound, StorageFailure
from services.excavator_service import excavator_display_name

LOGGER = logging.getLogger("fleet_rent.timesheets")

REGULAR_HOURS_PER_DAY = 8


def _parse_clock(value: str) -> int:
    try:
        parsed = datetime.strptime((value or "").strip(), "%H:%M")
    except ValueError as exc:
        raise InvalidPeriod(f"Invalid time: {value!r}") from exc
    return parsed.hour * 60 + parsed.minute


def _split_minutes(start_time: str, end_time: str) -> tuple[int, int]:
    start_minutes = _parse_clock(start_time)
    end_minutes = _parse_clock(end_time)
    if end_minutes <= start_minutes:
        # shifts across midnight are recorded as two entries
        raise InvalidPeriod("End time must be after start time on the same day.")
    elapsed = end_minutes - start_minutes
    regular = min(elapsed, REGULAR_HOURS_PER_DAY * 60)
    return regular, elapsed - regular


def calculate_hours(start_time: str, end_time: str) -> dict:
    regular_minutes, overtime_minutes = _split_minutes(start_time, end_time)
    return {
        "workHours": round(regular_minutes / 60, 2),
        "overtimeHours": round(overtime_minutes / 60, 2),
        "totalWorks": round((regular_minutes + overtime_minutes) / 60, 2),
    }


def compute_timesheet_pay(excavator: Excavator, start_time: str, end_time: str) -> dict:
    regular_minutes, overtime_minutes = _split_minutes(start_time, end_time)
    hours = calculate_hours(start_time, end_time)
    # pay from exact minutes; the hour figures above are rounded for display
    total_regular = round(regular_minutes * int(excavator.RegularRatePerHour or 0) / 60)
    total_overtime = round(overtime_minutes * int(excavator.OvertimeRatePerHour or 0) / 60)
    return {
        **hours,
        "totalRegularPay": total_regular,
        "totalOvertimePay": total_overtime,
        "totalPay": total_regular + total_overtime,
    }


def _apply_timesheet(db: Session, timesheet: Timesheet, payload: TimesheetUpsert) -> None:
    excavator = db.get(Excavator, payload.excavatorID)
    if not excavator:
        raise NotFound("Excavator not found")
    pay = compute_timesheet_pay(excavator, payload.startTime, payload.endTime)

    timesheet.ExcavatorID = excavator.ExcavatorID
    timesheet.ExcavatorName = excavator_display_name(excavator)
    timesheet.WorkDate = payload.workDate
    timesheet.StartTime = payload.startTime
    timesheet.EndTime = payload.endTime
    timesheet.WorkHours = pay["workHours"]
    timesheet.OvertimeHours = pay["overtimeHours"]
    timesheet.TotalWorks = pay["totalWorks"]
    timesheet.TotalRegularPay = pay["totalRegularPay"]
    timesheet.TotalOvertimePay = pay["totalOvertimePay"]
    timesheet.TotalPay = pay["totalPay"]
    timesheet.UpdatedDate = datetime.now()


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.exception("Store write failed action=%s", action)
        raise StorageFailure(f"Could not {action}: {exc.__class__.__name__}") from exc


def create_timesheet(db: Session, payload: TimesheetUpsert) -> Timesheet:
    timesheet = Timesheet(CreatedDate=datetime.now())
    _apply_timesheet(db, timesheet, payload)
    db.add(timesheet)
    _commit(db, "save timesheet")
    LOGGER.info(
        "Timesheet saved timesheet_id=%s excavator_id=%s date=%s hours=%s",
        timesheet.TimesheetID,
        timesheet.ExcavatorID,
        timesheet.WorkDate,
        timesheet.TotalWorks,
    )
    return timesheet


def update_timesheet(db: Session, timesheet_id: int, payload: TimesheetUpsert) -> Timesheet:
    timesheet = db.get(Timesheet, timesheet_id)
    if not timesheet:
        raise NotFound("Timesheet not found")
    _apply_timesheet(db, timesheet, payload)
    _commit(db, "update timesheet")
    return timesheet


def delete_timesheet(db: Session, timesheet_id: int) -> None:
    timesheet = db.get(Timesheet, timesheet_id)
    if not timesheet:
        raise NotFound("Timesheet not found")
    db.delete(timesheet)
    _commit(db, "delete timesheet")


def list_timesheets(db: Session, start_date: date | None = None, end_date: date | None = None) -> list[Timesheet]:
    stmt = select(Timesheet).order_by(Timesheet.WorkDate.desc(), Timesheet.TimesheetID.desc())
    if start_date:
        stmt = stmt.where(Timesheet.WorkDate >= start_date)
    if end_date:
        stmt = stmt.where(Timesheet.WorkDate <= end_date)
    try:
        return list(db.execute(stmt).scalars().all())
    except SQLAlchemyError as exc:
        LOGGER.exception("Timesheet lookup failed start=%s end=%s", start_date, end_date)
        raise LookupFailure("Could not load timesheets.") from exc


def serialize_timesheet(timesheet: Timesheet) -> dict:
    return {
        "timesheetID": timesheet.TimesheetID,
        "excavatorID": timesheet.ExcavatorID,
        "excavatorName": timesheet.ExcavatorName,
        "date": timesheet.WorkDate,
        "startTime": timesheet.StartTime,
        "endTime": timesheet.EndTime,
        "workHours": timesheet.WorkHours,
        "overtimeHours": timesheet.OvertimeHours,
        "totalWorks": timesheet.TotalWorks,
        "totalRegularPay": timesheet.TotalRegularPay,
        "totalOvertimePay": timesheet.TotalOvertimePay,
        "totalPay": timesheet.TotalPay,
        "createdDate": timesheet.CreatedDate,
        "updatedDate": timesheet.UpdatedDate,
    }
