from __future__ import annotations

import calendar
from datetime import date
from typing import Iterable

from sqlalchemy.orm import Session

from services.errors import InvalidPeriod
from services.timesheet_service import list_timesheets, serialize_timesheet


def _record_hours(timesheet) -> float:
    return float(timesheet.WorkHours or 0) + float(timesheet.OvertimeHours or 0)


def summarize_months(timesheets: Iterable) -> list[dict]:
    months: dict[tuple[int, int], dict] = {}
    for timesheet in timesheets:
        if not timesheet.WorkDate:
            continue
        key = (timesheet.WorkDate.year, timesheet.WorkDate.month)
        entry = months.setdefault(
            key,
            {
                "year": key[0],
                "month": key[1],
                "name": f"{calendar.month_name[key[1]]} {key[0]}",
                "totalEntries": 0,
                "totalHours": 0.0,
                "totalPay": 0,
                "excavators": {},
            },
        )
        entry["totalEntries"] += 1
        entry["totalHours"] += _record_hours(timesheet)
        entry["totalPay"] += int(timesheet.TotalPay or 0)
        entry["excavators"][timesheet.ExcavatorID] = timesheet.ExcavatorName or "Unknown"

    summaries = []
    for key in sorted(months, reverse=True):
        entry = months[key]
        names = list(entry.pop("excavators").values())
        entry["excavatorCount"] = len(names)
        entry["excavatorNames"] = names
        entry["totalHours"] = round(entry["totalHours"])
        summaries.append(entry)
    return summaries


def monthly_report(timesheets: Iterable, year: int, month: int) -> dict:
    groups: dict[int, dict] = {}
    total_hours = 0.0
    total_pay = 0
    total_records = 0

    for timesheet in timesheets:
        if not timesheet.WorkDate or (timesheet.WorkDate.year, timesheet.WorkDate.month) != (year, month):
            continue
        group = groups.setdefault(
            timesheet.ExcavatorID,
            {
                "excavatorID": timesheet.ExcavatorID,
                "name": timesheet.ExcavatorName or "Unknown",
                "records": [],
                "workingDays": 0,
                "totalHours": 0.0,
                "totalPay": 0,
            },
        )
        hours = _record_hours(timesheet)
        group["records"].append(timesheet)
        group["workingDays"] += 1
        group["totalHours"] += hours
        group["totalPay"] += int(timesheet.TotalPay or 0)
        total_hours += hours
        total_pay += int(timesheet.TotalPay or 0)
        total_records += 1

    excavators = []
    for group in sorted(groups.values(), key=lambda item: item["name"].lower()):
        group["records"].sort(key=lambda record: (record.WorkDate, record.StartTime or ""))
        group["records"] = [serialize_timesheet(record) for record in group["records"]]
        group["averageHours"] = round(group["totalHours"] / group["workingDays"], 2) if group["workingDays"] else 0
        group["totalHours"] = round(group["totalHours"], 2)
        excavators.append(group)

    return {
        "year": year,
        "month": month,
        "excavators": excavators,
        "summary": {
            "totalExcavators": len(excavators),
            "totalWorkingDays": total_records,
            "totalHours": round(total_hours, 2),
            "totalPay": total_pay,
            "averageHoursPerDay": round(total_hours / total_records, 2) if total_records else 0,
        },
    }


def load_month(db: Session, year: int, month: int) -> dict:
    if not 1 <= month <= 12:
        raise InvalidPeriod("month must be between 1 and 12.")
    last_day = calendar.monthrange(year, month)[1]
    timesheets = list_timesheets(db, date(year, month, 1), date(year, month, last_day))
    return monthly_report(timesheets, year, month)
