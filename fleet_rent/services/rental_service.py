from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from models.fleet_models import AuditLog, Invoice, InvoiceItem, Rental, RentalItem
from schemas.rentals import RentalDraft, RentalItemDraft, RentalUpdate
from services.availability_service import (
    check_availability,
    compute_availability,
    find_conflicting_rentals,
    load_overlapping_rentals,
)
from services.errors import (
    Conflict,
    DuplicateEquipment,
    EmptySelection,
    InvalidPeriod,
    LookupFailure,
    NotFound,
    StorageFailure,
    Unavailable,
)
from services.excavator_service import excavator_display_name, list_excavators, load_excavators_by_id

LOGGER = logging.getLogger("fleet_rent.rentals")

INVOICE_PREFIX = "INV"


def log_audit(db: Session, entity_type: str, entity_id: int, action: str, details: str | None = None, user_id: int | None = None) -> None:
    db.add(
        AuditLog(
            EntityType=entity_type,
            EntityID=entity_id,
            Action=action,
            Details=details,
            UserID=user_id,
            CreatedAt=datetime.now(),
        )
    )


def duration_days(start_date: date | None, end_date: date | None) -> int:
    if not start_date or not end_date or start_date > end_date:
        return 0
    return (end_date - start_date).days + 1


def _money(rate, hours, days: int) -> int:
    amount = Decimal(str(rate or 0)) * Decimal(str(hours or 0)) * days
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def validate_submission(draft: RentalDraft, availability: dict[int, bool]) -> None:
    """Reject a draft before anything is written.

    An excavator is unavailable only when its flag is explicitly ``False``;
    callers that could not read availability get ``LookupFailure`` instead and
    never reach this gate.
    """
    selected = [item.excavatorID for item in draft.excavators if item.excavatorID is not None]
    if len(set(selected)) != len(selected):
        raise DuplicateEquipment("The same excavator cannot be rented more than once in one rental.")

    if any(item.excavatorID is None for item in draft.excavators):
        raise EmptySelection("Select an excavator for every line item.")

    unavailable = [
        item.excavatorName or f"Excavator {item.excavatorID}"
        for item in draft.excavators
        if availability.get(item.excavatorID) is False
    ]
    if unavailable:
        raise Unavailable(unavailable)

    if duration_days(draft.startDate, draft.endDate) <= 0:
        raise InvalidPeriod("End date must be on or after start date.")


def compute_totals(line_items: Iterable[RentalItemDraft], days: int) -> dict:
    items = []
    for item in line_items:
        total_regular = _money(item.regularRatePerHour, item.regularHours, days)
        total_overtime = _money(item.overtimeRatePerHour, item.overtimeHours, days)
        items.append(
            {
                "excavatorID": item.excavatorID,
                "excavatorName": item.excavatorName,
                "brand": item.brand,
                "type": item.type,
                "operatorName": item.operatorName,
                "regularRatePerHour": int(item.regularRatePerHour or 0),
                "overtimeRatePerHour": int(item.overtimeRatePerHour or 0),
                "regularHours": item.regularHours,
                "overtimeHours": item.overtimeHours,
                "totalRegularPay": total_regular,
                "totalOvertimePay": total_overtime,
                "totalPay": total_regular + total_overtime,
            }
        )
    return {
        "durationDays": days,
        "items": items,
        "totalRegularPay": sum(item["totalRegularPay"] for item in items),
        "totalOvertimePay": sum(item["totalOvertimePay"] for item in items),
        "totalAmount": sum(item["totalPay"] for item in items),
    }


def snapshot_line_items(items: Iterable[RentalItemDraft], excavators_by_id: dict) -> list[RentalItemDraft]:
    snapshots = []
    for item in items:
        if item.excavatorID is None:
            snapshots.append(item)
            continue
        excavator = excavators_by_id.get(item.excavatorID)
        if excavator is None:
            raise NotFound(f"Excavator {item.excavatorID} not found.")
        updates = {}
        if not item.excavatorName:
            updates["excavatorName"] = excavator_display_name(excavator)
        if item.brand is None:
            updates["brand"] = excavator.Brand
        if item.type is None:
            updates["type"] = excavator.Type
        if item.operatorName is None:
            updates["operatorName"] = excavator.OperatorName
        if item.regularRatePerHour is None:
            updates["regularRatePerHour"] = int(excavator.RegularRatePerHour or 0)
        if item.overtimeRatePerHour is None:
            updates["overtimeRatePerHour"] = int(excavator.OvertimeRatePerHour or 0)
        snapshots.append(item.model_copy(update=updates) if updates else item)
    return snapshots


def carry_over_snapshots(items: Iterable[RentalItemDraft], previous_items: Iterable[RentalItem]) -> list[RentalItemDraft]:
    """Fill missing snapshot fields from the rental's existing line items.

    Excavators already on the rental keep the rates they were rented at; only
    newly added excavators pick up live rates in ``snapshot_line_items``.
    """
    previous_by_id = {item.ExcavatorID: item for item in previous_items}
    carried = []
    for item in items:
        previous = previous_by_id.get(item.excavatorID)
        if previous is None:
            carried.append(item)
            continue
        updates = {}
        if not item.excavatorName:
            updates["excavatorName"] = previous.ExcavatorName
        if item.brand is None:
            updates["brand"] = previous.Brand
        if item.type is None:
            updates["type"] = previous.Type
        if item.operatorName is None:
            updates["operatorName"] = previous.OperatorName
        if item.regularRatePerHour is None:
            updates["regularRatePerHour"] = previous.RegularRatePerHour
        if item.overtimeRatePerHour is None:
            updates["overtimeRatePerHour"] = previous.OvertimeRatePerHour
        carried.append(item.model_copy(update=updates) if updates else item)
    return carried


def draft_from_rental(rental: Rental) -> RentalDraft:
    return RentalDraft.model_construct(
        renterName=rental.RenterName,
        renterPhone=rental.RenterPhone,
        renterEmail=rental.RenterEmail or None,
        startDate=rental.StartDate,
        endDate=rental.EndDate,
        excavators=[
            RentalItemDraft(
                excavatorID=item.ExcavatorID,
                excavatorName=item.ExcavatorName,
                brand=item.Brand,
                type=item.Type,
                operatorName=item.OperatorName,
                regularRatePerHour=item.RegularRatePerHour,
                overtimeRatePerHour=item.OvertimeRatePerHour,
                regularHours=item.RegularHours,
                overtimeHours=item.OvertimeHours,
            )
            for item in rental.RentalItems
        ],
    )


def apply_rental_changes(draft: RentalDraft, changes: RentalUpdate) -> RentalDraft:
    updates = {}
    for field in ("renterName", "renterPhone", "startDate", "endDate", "excavators"):
        value = getattr(changes, field)
        if value is not None:
            updates[field] = value
    if "renterEmail" in changes.model_fields_set:
        updates["renterEmail"] = changes.renterEmail
    return draft.model_copy(update=updates) if updates else draft


def generate_invoice_number(db: Session, issued_at: datetime | None = None) -> str:
    moment = issued_at or datetime.now()
    base = f"{INVOICE_PREFIX}-{moment.strftime('%Y%m%d-%H%M%S')}"
    taken = set(
        db.execute(select(Invoice.InvoiceNumber).where(Invoice.InvoiceNumber.like(f"{base}%"))).scalars().all()
    )
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def _build_rental_items(totals: dict) -> list[RentalItem]:
    return [
        RentalItem(
            ExcavatorID=item["excavatorID"],
            Position=position,
            ExcavatorName=item["excavatorName"],
            Brand=item["brand"],
            Type=item["type"],
            OperatorName=item["operatorName"],
            RegularRatePerHour=item["regularRatePerHour"],
            OvertimeRatePerHour=item["overtimeRatePerHour"],
            RegularHours=item["regularHours"],
            OvertimeHours=item["overtimeHours"],
            TotalRegularPay=item["totalRegularPay"],
            TotalOvertimePay=item["totalOvertimePay"],
            TotalPay=item["totalPay"],
        )
        for position, item in enumerate(totals["items"])
    ]


def _build_invoice_items(totals: dict) -> list[InvoiceItem]:
    return [
        InvoiceItem(
            Position=position,
            ExcavatorName=item["excavatorName"],
            Brand=item["brand"],
            Type=item["type"],
            OperatorName=item["operatorName"],
            RegularRatePerHour=item["regularRatePerHour"],
            OvertimeRatePerHour=item["overtimeRatePerHour"],
            RegularHours=item["regularHours"],
            OvertimeHours=item["overtimeHours"],
            DurationDays=totals["durationDays"],
            TotalRegularPay=item["totalRegularPay"],
            TotalOvertimePay=item["totalOvertimePay"],
            Total=item["totalPay"],
        )
        for position, item in enumerate(totals["items"])
    ]


def _apply_invoice_terms(invoice: Invoice, draft: RentalDraft, totals: dict) -> None:
    invoice.RenterName = draft.renterName
    invoice.RenterPhone = draft.renterPhone
    invoice.RenterEmail = str(draft.renterEmail) if draft.renterEmail else ""
    invoice.InvoiceItems = _build_invoice_items(totals)
    invoice.TotalRegularPay = totals["totalRegularPay"]
    invoice.TotalOvertimePay = totals["totalOvertimePay"]
    invoice.TotalAmount = totals["totalAmount"]
    invoice.UpdatedDate = datetime.now()


def _commit_or_storage_failure(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.exception("Store write failed action=%s", action)
        raise StorageFailure(f"Could not {action}: {exc.__class__.__name__}") from exc


def create_rental_and_invoice(db: Session, draft: RentalDraft, user_id: int | None = None) -> int:
    try:
        validate_submission(draft, {})
        selected_ids = [item.excavatorID for item in draft.excavators]
        excavators_by_id = load_excavators_by_id(db, selected_ids)
        draft = draft.model_copy(update={"excavators": snapshot_line_items(draft.excavators, excavators_by_id)})

        # under-repair units are offered to nobody
        availability = dict(check_availability(db, draft.startDate, draft.endDate))
        for excavator_id, excavator in excavators_by_id.items():
            if excavator.Status != "Available":
                availability[excavator_id] = False
        validate_submission(draft, availability)
    except (DuplicateEquipment, EmptySelection, Unavailable, InvalidPeriod, NotFound) as exc:
        LOGGER.warning("Rental rejected renter=%s reason=%s", draft.renterName, exc)
        raise

    days = duration_days(draft.startDate, draft.endDate)
    totals = compute_totals(draft.excavators, days)
    now = datetime.now()

    rental = Rental(
        RenterName=draft.renterName,
        RenterPhone=draft.renterPhone,
        RenterEmail=str(draft.renterEmail) if draft.renterEmail else "",
        StartDate=draft.startDate,
        EndDate=draft.endDate,
        DurationDays=days,
        Status="aktif",
        TotalAmount=totals["totalAmount"],
        CreatedDate=now,
        UpdatedDate=now,
    )
    rental.RentalItems = _build_rental_items(totals)

    try:
        invoice_number = generate_invoice_number(db, now)
    except SQLAlchemyError as exc:
        raise StorageFailure(f"Could not create rental: {exc.__class__.__name__}") from exc
    invoice = Invoice(
        InvoiceNumber=invoice_number,
        DateIssued=now,
        IsPaid=False,
        Status="pending",
        CreatedDate=now,
    )
    _apply_invoice_terms(invoice, draft, totals)
    rental.Invoice = invoice

    db.add(rental)
    try:
        db.flush()
        log_audit(db, "Rental", rental.RentalID, "CreateRental", f"Invoice {invoice_number}", user_id=user_id)
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.exception("Store write failed action=create rental")
        raise StorageFailure(f"Could not create rental: {exc.__class__.__name__}") from exc
    _commit_or_storage_failure(db, "create rental")

    LOGGER.info(
        "Rental created rental_id=%s invoice=%s total=%s",
        rental.RentalID,
        invoice_number,
        totals["totalAmount"],
    )
    return rental.RentalID


def update_rental(db: Session, rental_id: int, changes: RentalUpdate, user_id: int | None = None) -> dict:
    """Apply new terms to a rental and its invoice in one transaction.

    Unlike creation, a scheduling conflict does not block the update: it raises
    ``Conflict`` until the operator resubmits with ``acknowledgeConflict`` set,
    and the override is recorded in the audit log.
    """
    rental = get_rental(db, rental_id)
    draft = apply_rental_changes(draft_from_rental(rental), changes)
    try:
        validate_submission(draft, {})
        selected_ids = [item.excavatorID for item in draft.excavators]
        excavators_by_id = load_excavators_by_id(db, selected_ids)
        items = carry_over_snapshots(draft.excavators, rental.RentalItems)
        draft = draft.model_copy(update={"excavators": snapshot_line_items(items, excavators_by_id)})
    except (DuplicateEquipment, EmptySelection, InvalidPeriod, NotFound) as exc:
        LOGGER.warning("Rental update rejected rental_id=%s reason=%s", rental_id, exc)
        raise
    days = duration_days(draft.startDate, draft.endDate)

    overlapping = load_overlapping_rentals(db, draft.startDate, draft.endDate, exclude_rental_id=rental_id)
    availability = compute_availability(
        draft.startDate,
        draft.endDate,
        list_excavators(db),
        overlapping,
        exclude_rental_id=rental_id,
    )
    blocked = [excavator_id for excavator_id in selected_ids if availability.get(excavator_id) is False]
    conflicts = []
    if blocked:
        conflicts = find_conflicting_rentals(draft.startDate, draft.endDate, blocked, overlapping, rental_id)
        if not changes.acknowledgeConflict:
            LOGGER.warning("Rental update conflict rental_id=%s excavators=%s", rental_id, blocked)
            raise Conflict(conflicts)
        LOGGER.warning("Rental update conflict overridden rental_id=%s excavators=%s", rental_id, blocked)
        log_audit(
            db,
            "Rental",
            rental_id,
            "UpdateConflictOverride",
            "Overlaps rentals " + ", ".join(str(entry["rentalID"]) for entry in conflicts),
            user_id=user_id,
        )

    totals = compute_totals(draft.excavators, days)
    rental.RenterName = draft.renterName
    rental.RenterPhone = draft.renterPhone
    rental.RenterEmail = str(draft.renterEmail) if draft.renterEmail else ""
    rental.StartDate = draft.startDate
    rental.EndDate = draft.endDate
    rental.DurationDays = days
    rental.RentalItems = _build_rental_items(totals)
    rental.TotalAmount = totals["totalAmount"]
    rental.UpdatedDate = datetime.now()
    if rental.Invoice is not None:
        _apply_invoice_terms(rental.Invoice, draft, totals)

    log_audit(db, "Rental", rental_id, "UpdateRental", f"Total {totals['totalAmount']}", user_id=user_id)
    _commit_or_storage_failure(db, "update rental")
    LOGGER.info("Rental updated rental_id=%s total=%s", rental_id, totals["totalAmount"])
    return {
        "rentalID": rental_id,
        "conflicts": conflicts,
        "conflictOverridden": bool(conflicts),
    }


def delete_rental(db: Session, rental_id: int, user_id: int | None = None) -> None:
    rental = get_rental(db, rental_id)
    db.delete(rental)
    log_audit(db, "Rental", rental_id, "DeleteRental", None, user_id=user_id)
    _commit_or_storage_failure(db, "delete rental")
    LOGGER.info("Rental deleted rental_id=%s", rental_id)


def set_rental_status(db: Session, rental_id: int, status: str, user_id: int | None = None) -> Rental:
    rental = get_rental(db, rental_id)
    previous = rental.Status
    rental.Status = status
    rental.UpdatedDate = datetime.now()
    log_audit(db, "Rental", rental_id, "SetStatus", f"{previous} -> {status}", user_id=user_id)
    _commit_or_storage_failure(db, "change rental status")
    return rental


def mark_invoice_paid(db: Session, invoice_id: int, is_paid: bool = True) -> Invoice:
    invoice = get_invoice(db, invoice_id)
    invoice.IsPaid = bool(is_paid)
    invoice.Status = "paid" if is_paid else "pending"
    invoice.UpdatedDate = datetime.now()
    _commit_or_storage_failure(db, "update invoice")
    return invoice


def _read(db: Session, stmt, what: str):
    try:
        return db.execute(stmt).scalars()
    except SQLAlchemyError as exc:
        LOGGER.exception("Lookup failed for %s", what)
        raise LookupFailure(f"Could not load {what}.") from exc


def _rental_query():
    return select(Rental).options(
        selectinload(Rental.RentalItems),
        selectinload(Rental.Invoice).selectinload(Invoice.InvoiceItems),
    )


def get_rental(db: Session, rental_id: int) -> Rental:
    rental = _read(db, _rental_query().where(Rental.RentalID == rental_id), "rental").first()
    if not rental:
        raise NotFound("Rental not found")
    return rental


def list_rentals(db: Session, status: str | None = None) -> list[Rental]:
    stmt = _rental_query().order_by(Rental.CreatedDate.desc(), Rental.RentalID.desc())
    if status:
        stmt = stmt.where(Rental.Status == status)
    return list(_read(db, stmt, "rentals").all())


def _invoice_query():
    return select(Invoice).options(selectinload(Invoice.InvoiceItems))


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = _read(db, _invoice_query().where(Invoice.InvoiceID == invoice_id), "invoice").first()
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice


def get_invoice_for_rental(db: Session, rental_id: int) -> Invoice:
    invoice = _read(db, _invoice_query().where(Invoice.RentalID == rental_id), "invoice").first()
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice


def list_invoices(db: Session, is_paid: bool | None = None) -> list[Invoice]:
    stmt = _invoice_query().order_by(Invoice.DateIssued.desc(), Invoice.InvoiceID.desc())
    if is_paid is not None:
        stmt = stmt.where(Invoice.IsPaid == is_paid)
    return list(_read(db, stmt, "invoices").all())


def serialize_rental(rental: Rental) -> dict:
    return {
        "rentalID": rental.RentalID,
        "renterName": rental.RenterName,
        "renterPhone": rental.RenterPhone,
        "renterEmail": rental.RenterEmail or "",
        "rentPeriod": {
            "startDate": rental.StartDate,
            "endDate": rental.EndDate,
            "durationDays": rental.DurationDays,
        },
        "status": rental.Status,
        "totalAmount": int(rental.TotalAmount or 0),
        "invoiceID": rental.Invoice.InvoiceID if rental.Invoice is not None else None,
        "createdDate": rental.CreatedDate,
        "updatedDate": rental.UpdatedDate,
        "excavators": [
            {
                "rentalItemID": item.RentalItemID,
                "excavatorID": item.ExcavatorID,
                "excavatorName": item.ExcavatorName,
                "brand": item.Brand,
                "type": item.Type,
                "operatorName": item.OperatorName,
                "regularRatePerHour": item.RegularRatePerHour,
                "overtimeRatePerHour": item.OvertimeRatePerHour,
                "regularHours": item.RegularHours,
                "overtimeHours": item.OvertimeHours,
                "totalRegularPay": item.TotalRegularPay,
                "totalOvertimePay": item.TotalOvertimePay,
                "totalPay": item.TotalPay,
            }
            for item in rental.RentalItems
        ],
    }


def serialize_invoice(invoice: Invoice) -> dict:
    return {
        "invoiceID": invoice.InvoiceID,
        "rentalID": invoice.RentalID,
        "invoiceNumber": invoice.InvoiceNumber,
        "renterName": invoice.RenterName,
        "renterPhone": invoice.RenterPhone,
        "renterEmail": invoice.RenterEmail or "",
        "dateIssued": invoice.DateIssued,
        "totalRegularPay": invoice.TotalRegularPay,
        "totalOvertimePay": invoice.TotalOvertimePay,
        "totalAmount": invoice.TotalAmount,
        "isPaid": bool(invoice.IsPaid),
        "status": invoice.Status,
        "items": [
            {
                "excavatorName": item.ExcavatorName,
                "brand": item.Brand,
                "type": item.Type,
                "operatorName": item.OperatorName,
                "regularRatePerHour": item.RegularRatePerHour,
                "overtimeRatePerHour": item.OvertimeRatePerHour,
                "regularHours": item.RegularHours,
                "overtimeHours": item.OvertimeHours,
                "durationDays": item.DurationDays,
                "totalRegularPay": item.TotalRegularPay,
                "totalOvertimePay": item.TotalOvertimePay,
                "total": item.Total,
            }
            for item in invoice.InvoiceItems
        ],
    }
