"""Rental availability for excavators over a calendar-date period.

A rental period is inclusive at both ends, so a rental ending on the day another
begins still counts as overlapping: a unit cannot be returned and sent out again
on the same day. Every overlapping active rental occupies exactly one unit of
each distinct excavator in its line items, whatever hours were booked.

The check is a snapshot read. Nothing here reserves stock, so two concurrent
submissions can still double-book the last unit.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from models.fleet_models import Rental
from services.errors import LookupFailure
from services.excavator_service import excavator_display_name, excavator_stock, list_excavators

LOGGER = logging.getLogger("fleet_rent.availability")

ACTIVE_STATUS = "aktif"


def periods_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and b_start <= a_end


def _rental_excavator_ids(rental) -> set[int]:
    return {item.ExcavatorID for item in (rental.RentalItems or []) if item.ExcavatorID is not None}


def _occupying_rentals(
    start_date: date,
    end_date: date,
    active_rentals: Iterable,
    exclude_rental_id: int | None = None,
):
    for rental in active_rentals:
        if exclude_rental_id is not None and rental.RentalID == exclude_rental_id:
            continue
        if (rental.Status or "").strip().lower() != ACTIVE_STATUS:
            continue
        if not periods_overlap(rental.StartDate, rental.EndDate, start_date, end_date):
            continue
        yield rental


def compute_availability(
    start_date: date,
    end_date: date,
    excavators: Iterable,
    active_rentals: Iterable,
    exclude_rental_id: int | None = None,
) -> dict[int, bool]:
    if start_date > end_date:
        return {}

    occupied: Counter[int] = Counter()
    for rental in _occupying_rentals(start_date, end_date, active_rentals, exclude_rental_id):
        for excavator_id in _rental_excavator_ids(rental):
            occupied[excavator_id] += 1

    return {
        excavator.ExcavatorID: excavator_stock(excavator) - occupied[excavator.ExcavatorID] > 0
        for excavator in excavators
    }


def find_conflicting_rentals(
    start_date: date,
    end_date: date,
    excavator_ids: Iterable[int],
    active_rentals: Iterable,
    exclude_rental_id: int | None = None,
) -> list[dict]:
    wanted = {value for value in excavator_ids if value is not None}
    conflicts = []
    for rental in _occupying_rentals(start_date, end_date, active_rentals, exclude_rental_id):
        shared = [item for item in rental.RentalItems or [] if item.ExcavatorID in wanted]
        if not shared:
            continue
        conflicts.append(
            {
                "rentalID": rental.RentalID,
                "renterName": rental.RenterName,
                "startDate": rental.StartDate.isoformat(),
                "endDate": rental.EndDate.isoformat(),
                "excavatorIDs": sorted({item.ExcavatorID for item in shared}),
                "excavatorNames": sorted({item.ExcavatorName or f"Excavator {item.ExcavatorID}" for item in shared}),
            }
        )
    conflicts.sort(key=lambda entry: (entry["startDate"], entry["rentalID"]))
    return conflicts


def load_overlapping_rentals(
    db: Session,
    start_date: date,
    end_date: date,
    exclude_rental_id: int | None = None,
) -> list[Rental]:
    stmt = (
        select(Rental)
        .options(selectinload(Rental.RentalItems))
        .where(Rental.Status == ACTIVE_STATUS)
        .where(Rental.StartDate <= end_date)
        .where(Rental.EndDate >= start_date)
    )
    if exclude_rental_id is not None:
        stmt = stmt.where(Rental.RentalID != exclude_rental_id)
    try:
        return list(db.execute(stmt).scalars().all())
    except SQLAlchemyError as exc:
        LOGGER.exception("Rental overlap lookup failed start=%s end=%s", start_date, end_date)
        raise LookupFailure("Could not check excavator availability.") from exc


def check_availability(
    db: Session,
    start_date: date,
    end_date: date,
    exclude_rental_id: int | None = None,
    status: str | None = None,
    excavators: Iterable | None = None,
) -> dict[int, bool]:
    if start_date > end_date:
        return {}
    if excavators is None:
        excavators = list_excavators(db, status=status)
    else:
        excavators = list(excavators)
    rentals = load_overlapping_rentals(db, start_date, end_date, exclude_rental_id)
    availability = compute_availability(start_date, end_date, excavators, rentals, exclude_rental_id)
    LOGGER.debug(
        "Availability start=%s end=%s exclude=%s unavailable=%s",
        start_date,
        end_date,
        exclude_rental_id,
        [excavator_display_name(ex) for ex in excavators if not availability.get(ex.ExcavatorID)],
    )
    return availability
