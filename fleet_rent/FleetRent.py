import logging
import os
from datetime import date, datetime

from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.base import Base
from db.deps import get_fleet_db
from db.session import engine_fleet
from models.fleet_models import Excavator
from schemas.excavators import ExcavatorUpsert
from schemas.rentals import InvoicePaymentRequest, RentalDraft, RentalStatusRequest, RentalUpdate
from schemas.timesheets import TimesheetUpsert
from services.availability_service import check_availability
from services.errors import (
    Conflict,
    DuplicateEquipment,
    EmptySelection,
    InvalidPeriod,
    LookupFailure,
    NotFound,
    RentalError,
    StorageFailure,
    Unavailable,
)
from services.excavator_service import (
    EXCAVATOR_STATUSES,
    excavator_display_name,
    excavator_stock,
    list_excavators,
    map_excavator_field,
    serialize_excavator,
)
from services.rental_service import (
    create_rental_and_invoice,
    delete_rental,
    get_invoice,
    get_invoice_for_rental,
    get_rental,
    list_invoices,
    list_rentals,
    mark_invoice_paid,
    serialize_invoice,
    serialize_rental,
    set_rental_status,
    update_rental,
)
from services.report_service import load_month, summarize_months
from services.timesheet_service import (
    compute_timesheet_pay,
    create_timesheet,
    delete_timesheet,
    list_timesheets,
    serialize_timesheet,
    update_timesheet,
)
from services.user_access_service import get_session, is_authorized

app = FastAPI(title="Fleet Rent")

AUTH_LOGGER = logging.getLogger("fleet_rent.auth")
LOGGER = logging.getLogger("fleet_rent.api")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _env_flag(name: str, default: str) -> bool:
    return str(os.environ.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:3000,http://localhost:3000",
)
_CORS_ALLOW_CREDENTIALS = _env_flag("CORS_ALLOW_CREDENTIALS", "true")
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

if _env_flag("AUTO_CREATE_TABLES", "true"):
    Base.metadata.create_all(bind=engine_fleet)


def require_staff(
    request: Request,
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
) -> dict:
    session = get_session(x_session_token)
    if not is_authorized(session):
        client = request.client.host if request.client and request.client.host else "unknown"
        AUTH_LOGGER.warning("Rejected request path=%s ip=%s", request.url.path, client)
        raise HTTPException(status_code=401, detail="Not logged in.")
    return session


def _staff_id(session: dict) -> int | None:
    try:
        return int(session.get("staffID"))
    except (TypeError, ValueError):
        return None


def _http_error(exc: RentalError) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (InvalidPeriod, DuplicateEquipment, EmptySelection)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, Unavailable):
        return HTTPException(status_code=409, detail={"message": str(exc), "unavailable": exc.names})
    if isinstance(exc, Conflict):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "conflicts": exc.details,
                "requiresAcknowledgement": True,
            },
        )
    if isinstance(exc, LookupFailure):
        return HTTPException(status_code=503, detail={"message": str(exc), "retryable": True})
    if isinstance(exc, StorageFailure):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_fleet_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/excavators")
def get_excavators(
    status: str | None = Query(None),
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    if status and status not in EXCAVATOR_STATUSES:
        raise HTTPException(status_code=400, detail="status must be Available or UnderRepair.")
    try:
        excavators = list_excavators(db, status=status)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return [serialize_excavator(excavator) for excavator in excavators]


@app.get("/api/excavators/{excavator_id}")
def get_excavator(excavator_id: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    excavator = db.get(Excavator, excavator_id)
    if not excavator:
        raise HTTPException(status_code=404, detail="Excavator not found")
    return serialize_excavator(excavator)


@app.post("/api/excavators")
def create_excavator(payload: ExcavatorUpsert, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    if not (payload.name or "").strip() or not (payload.brand or "").strip():
        raise HTTPException(status_code=400, detail="Excavator name and brand are required.")

    excavator = Excavator(RegularRatePerHour=0, OvertimeRatePerHour=0, Status="Available", Stock=1)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "excavatorID" or value is None:
            continue
        setattr(excavator, map_excavator_field(field), value.strip() if isinstance(value, str) else value)
    excavator.CreatedDate = datetime.now()
    excavator.UpdatedDate = datetime.now()

    db.add(excavator)
    db.commit()
    db.refresh(excavator)
    LOGGER.info("Excavator created excavator_id=%s staff_id=%s", excavator.ExcavatorID, _staff_id(session))
    return serialize_excavator(excavator)


@app.put("/api/excavators/{excavator_id}")
def update_excavator(
    excavator_id: int,
    payload: ExcavatorUpsert,
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    excavator = db.get(Excavator, excavator_id)
    if not excavator:
        raise HTTPException(status_code=404, detail="Excavator not found")

    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "excavatorID" or value is None:
            continue
        if field in {"name", "brand"} and not str(value).strip():
            raise HTTPException(status_code=400, detail="Excavator name and brand are required.")
        setattr(excavator, map_excavator_field(field), value.strip() if isinstance(value, str) else value)
    excavator.UpdatedDate = datetime.now()

    db.commit()
    db.refresh(excavator)
    return serialize_excavator(excavator)


@app.delete("/api/excavators/{excavator_id}")
def delete_excavator(excavator_id: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    excavator = db.get(Excavator, excavator_id)
    if not excavator:
        raise HTTPException(status_code=404, detail="Excavator not found")

    db.delete(excavator)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Excavator is still referenced by rentals or timesheets.") from exc
    LOGGER.info("Excavator deleted excavator_id=%s staff_id=%s", excavator_id, _staff_id(session))
    return {"message": "Deleted"}


@app.get("/api/rentals/availability")
def get_rental_availability(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    exclude_rental_id: int | None = Query(None, alias="excludeRentalID"),
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        excavators = list_excavators(db, status="Available")
        availability = check_availability(db, start_date, end_date, exclude_rental_id, excavators=excavators)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return {
        "startDate": start_date,
        "endDate": end_date,
        "excludeRentalID": exclude_rental_id,
        "excavators": [
            {
                "excavatorID": excavator.ExcavatorID,
                "displayName": excavator_display_name(excavator),
                "stock": excavator_stock(excavator),
                "available": availability[excavator.ExcavatorID],
            }
            for excavator in excavators
            if excavator.ExcavatorID in availability
        ],
    }


@app.get("/api/rentals")
def get_rentals(
    status: str | None = Query(None),
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        rentals = list_rentals(db, status=status)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return [serialize_rental(rental) for rental in rentals]


@app.get("/api/rentals/{rental_id}")
def get_rental_detail(rental_id: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        return serialize_rental(get_rental(db, rental_id))
    except RentalError as exc:
        raise _http_error(exc) from exc


@app.post("/api/rentals")
def create_rental(payload: RentalDraft, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        rental_id = create_rental_and_invoice(db, payload, user_id=_staff_id(session))
        rental = get_rental(db, rental_id)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return serialize_rental(rental)


@app.put("/api/rentals/{rental_id}")
def edit_rental(
    rental_id: int,
    payload: RentalUpdate,
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        result = update_rental(db, rental_id, payload, user_id=_staff_id(session))
        rental = get_rental(db, rental_id)
    except RentalError as exc:
        raise _http_error(exc) from exc
    body = serialize_rental(rental)
    body["conflicts"] = result["conflicts"]
    body["conflictOverridden"] = result["conflictOverridden"]
    return body


@app.delete("/api/rentals/{rental_id}")
def remove_rental(rental_id: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        delete_rental(db, rental_id, user_id=_staff_id(session))
    except RentalError as exc:
        raise _http_error(exc) from exc
    return {"message": "Deleted"}


@app.post("/api/rentals/{rental_id}/status")
def change_rental_status(
    rental_id: int,
    payload: RentalStatusRequest,
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        rental = set_rental_status(db, rental_id, payload.status, user_id=_staff_id(session))
    except RentalError as exc:
        raise _http_error(exc) from exc
    return serialize_rental(rental)


@app.get("/api/rentals/{rental_id}/invoice")
def get_rental_invoice(rental_id: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        return serialize_invoice(get_invoice_for_rental(db, rental_id))
    except RentalError as exc:
        raise _http_error(exc) from exc


@app.get("/api/invoices")
def get_invoices(
    is_paid: bool | None = Query(None, alias="isPaid"),
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        invoices = list_invoices(db, is_paid=is_paid)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return [serialize_invoice(invoice) for invoice in invoices]


@app.get("/api/invoices/{invoice_id}")
def get_invoice_detail(invoice_id: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        return serialize_invoice(get_invoice(db, invoice_id))
    except RentalError as exc:
        raise _http_error(exc) from exc


@app.post("/api/invoices/{invoice_id}/payment")
def set_invoice_payment(
    invoice_id: int,
    payload: InvoicePaymentRequest,
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        invoice = mark_invoice_paid(db, invoice_id, payload.isPaid)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return serialize_invoice(invoice)


@app.get("/api/timesheets")
def get_timesheets(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        timesheets = list_timesheets(db, start_date, end_date)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return [serialize_timesheet(timesheet) for timesheet in timesheets]


@app.get("/api/timesheets/preview")
def preview_timesheet_pay(
    excavator_id: int = Query(..., alias="excavatorID"),
    start_time: str = Query(..., alias="startTime"),
    end_time: str = Query(..., alias="endTime"),
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    excavator = db.get(Excavator, excavator_id)
    if not excavator:
        raise HTTPException(status_code=404, detail="Excavator not found")
    try:
        return compute_timesheet_pay(excavator, start_time, end_time)
    except RentalError as exc:
        raise _http_error(exc) from exc


@app.post("/api/timesheets")
def add_timesheet(payload: TimesheetUpsert, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        return serialize_timesheet(create_timesheet(db, payload))
    except RentalError as exc:
        raise _http_error(exc) from exc


@app.put("/api/timesheets/{timesheet_id}")
def edit_timesheet(
    timesheet_id: int,
    payload: TimesheetUpsert,
    db: Session = Depends(get_fleet_db),
    session: dict = Depends(require_staff),
):
    try:
        return serialize_timesheet(update_timesheet(db, timesheet_id, payload))
    except RentalError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/timesheets/{timesheet_id}")
def remove_timesheet(timesheet_id: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        delete_timesheet(db, timesheet_id)
    except RentalError as exc:
        raise _http_error(exc) from exc
    return {"message": "Deleted"}


@app.get("/api/reports/months")
def get_report_months(db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        return summarize_months(list_timesheets(db))
    except RentalError as exc:
        raise _http_error(exc) from exc


@app.get("/api/reports/{year}/{month}")
def get_monthly_report(year: int, month: int, db: Session = Depends(get_fleet_db), session: dict = Depends(require_staff)):
    try:
        return load_month(db, year, month)
    except RentalError as exc:
        raise _http_error(exc) from exc
