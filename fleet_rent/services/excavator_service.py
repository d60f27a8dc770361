from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.fleet_models import Excavator
from services.errors import LookupFailure

LOGGER = logging.getLogger("fleet_rent.excavators")

EXCAVATOR_STATUSES = {"Available", "UnderRepair"}
DEFAULT_STOCK = 1


def map_excavator_field(field: str) -> str:
    mapping = {
        "excavatorID": "ExcavatorID",
        "name": "Name",
        "brand": "Brand",
        "type": "Type",
        "operatorName": "OperatorName",
        "regularRatePerHour": "RegularRatePerHour",
        "overtimeRatePerHour": "OvertimeRatePerHour",
        "status": "Status",
        "stock": "Stock",
    }
    return mapping.get(field, field)


def excavator_display_name(excavator: Excavator) -> str:
    return f"{excavator.Brand or ''} {excavator.Name or ''}".strip()


def excavator_stock(excavator: Excavator) -> int:
    return int(excavator.Stock or DEFAULT_STOCK)


def list_excavators(db: Session, status: str | None = None) -> list[Excavator]:
    stmt = select(Excavator).order_by(Excavator.Brand, Excavator.Name)
    if status:
        stmt = stmt.where(Excavator.Status == status)
    try:
        return list(db.execute(stmt).scalars().all())
    except SQLAlchemyError as exc:
        LOGGER.exception("Excavator lookup failed status=%s", status)
        raise LookupFailure("Could not load excavators.") from exc


def load_excavators_by_id(db: Session, excavator_ids) -> dict[int, Excavator]:
    wanted = {int(value) for value in excavator_ids if value is not None}
    if not wanted:
        return {}
    try:
        rows = db.execute(select(Excavator).where(Excavator.ExcavatorID.in_(wanted))).scalars().all()
    except SQLAlchemyError as exc:
        LOGGER.exception("Excavator lookup failed ids=%s", sorted(wanted))
        raise LookupFailure("Could not load excavators.") from exc
    return {row.ExcavatorID: row for row in rows}


def serialize_excavator(excavator: Excavator) -> dict:
    return {
        "excavatorID": excavator.ExcavatorID,
        "name": excavator.Name,
        "brand": excavator.Brand,
        "type": excavator.Type,
        "operatorName": excavator.OperatorName,
        "displayName": excavator_display_name(excavator),
        "regularRatePerHour": int(excavator.RegularRatePerHour or 0),
        "overtimeRatePerHour": int(excavator.OvertimeRatePerHour or 0),
        "status": excavator.Status,
        "stock": excavator_stock(excavator),
        "createdDate": excavator.CreatedDate,
        "updatedDate": excavator.UpdatedDate,
    }
