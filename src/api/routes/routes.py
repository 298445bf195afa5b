from datetime import date
from functools import lru_cache
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session, sessionmaker

from src.infrastructure.config import get_settings
from src.infrastructure.db.session import SessionLocal
from src.application.booking_service import BookingService
from src.application.notification_service import OutboxNotificationService
from src.application.payment_gateway import PaymentGateway, build_payment_gateway
from src.application.reporting_service import ReportingService
from src.api.schemas.schemas import (
    BookingCountResponse,
    BookingCreateRequest,
    BookingHoldRequest,
    BookingResponse,
    CancelRequest,
    OutboxEventResponse,
    PaymentRequest,
    ReleaseRequest,
    RevenueResponse,
    SeatAvailabilityResponse,
)
from src.domain.exceptions import (
    GatewayConfigurationError,
    GatewayDeclinedError,
    GatewayTransientError,
    InvalidStateTransitionError,
    NotFoundError,
    PaymentValidationError,
    RefundFailedError,
    SeatConflictError,
)
from src.domain.state_machine import PaymentStatus
from src.infrastructure.repositories.outbox_repository import OutboxRepository


router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[2] / "templates"))
logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (PaymentValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (SeatConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (GatewayDeclinedError, status.HTTP_402_PAYMENT_REQUIRED),
    (GatewayTransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GatewayConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (RefundFailedError, status.HTTP_502_BAD_GATEWAY),
)


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@lru_cache()
def get_payment_gateway() -> PaymentGateway:
    return build_payment_gateway(get_settings())


def get_booking_service(
    session_factory: sessionmaker = Depends(get_session_factory),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> BookingService:
    settings = get_settings()
    notifier = OutboxNotificationService(
        session_factory,
        admin_user_ids=settings.admin_user_ids,
        currency=settings.currency,
    )
    return BookingService(session_factory, gateway, notifier)


def get_reporting_service(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> ReportingService:
    return ReportingService(session_factory)


def _http_error(exc: Exception) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            detail = str(exc)
            booking_id = getattr(exc, "booking_id", None)
            if booking_id and status_code != status.HTTP_404_NOT_FOUND:
                detail = {"message": str(exc), "booking_id": booking_id}
            if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
                logger.warning("Request failed with %s: %s", status_code, exc)
            return HTTPException(status_code=status_code, detail=detail)
    logger.error("Unmapped booking error: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


_HANDLED_ERRORS = tuple(error_type for error_type, _ in _ERROR_STATUS)


@router.get("/health")
def health():
    return {"message": "Transport Booking Core is running"}


@router.post("/bookings", response_model=BookingResponse)
def create_booking(
    request: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.create_booking_with_payment(
            draft=request.to_draft(),
            amount=request.amount,
            payment_details=request.payment_details.to_domain(),
            discount_code=request.discount_code,
        )
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc

    return BookingResponse.from_booking(booking)


@router.post("/bookings/hold", response_model=BookingResponse)
def hold_booking(
    request: BookingHoldRequest,
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.reserve_booking(
            draft=request.to_draft(),
            amount=request.amount,
            payment_method=request.payment_method,
            discount_code=request.discount_code,
        )
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc

    return BookingResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/pay", response_model=BookingResponse)
def pay_booking(
    booking_id: str,
    request: PaymentRequest,
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.pay_booking(
            booking_id=booking_id,
            payment_details=request.payment_details.to_domain(),
        )
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc

    return BookingResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    request: CancelRequest | None = None,
    service: BookingService = Depends(get_booking_service),
):
    reason = request.reason if request else CancelRequest().reason
    try:
        booking = service.cancel_booking_with_refund(booking_id, reason=reason)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc

    return BookingResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/release", response_model=BookingResponse)
def release_booking(
    booking_id: str,
    request: ReleaseRequest | None = None,
    service: BookingService = Depends(get_booking_service),
):
    reason = request.reason if request else ReleaseRequest().reason
    try:
        booking = service.release_hold(booking_id, reason=reason)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc

    return BookingResponse.from_booking(booking)


@router.get("/bookings/count", response_model=BookingCountResponse)
def count_bookings(
    payment_status: PaymentStatus = PaymentStatus.PAID,
    reports: ReportingService = Depends(get_reporting_service),
):
    return BookingCountResponse(
        payment_status=payment_status.value,
        count=reports.count_bookings(payment_status),
    )


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    reports: ReportingService = Depends(get_reporting_service),
):
    try:
        booking = reports.get_booking(booking_id)
    except NotFoundError as exc:
        raise _http_error(exc) from exc

    return BookingResponse.from_booking(booking)


@router.get("/routes/{route_id}/bookings", response_model=list[BookingResponse])
def list_route_bookings(
    route_id: str,
    travel_date: date | None = None,
    reports: ReportingService = Depends(get_reporting_service),
):
    bookings = reports.list_bookings_by_route(route_id, travel_date)
    return [BookingResponse.from_booking(booking) for booking in bookings]


@router.get("/routes/{route_id}/revenue", response_model=RevenueResponse)
def route_revenue(
    route_id: str,
    travel_date: date | None = None,
    reports: ReportingService = Depends(get_reporting_service),
):
    try:
        summary = reports.route_revenue(route_id, travel_date)
    except NotFoundError as exc:
        raise _http_error(exc) from exc

    return RevenueResponse(
        route_id=summary.route_id,
        gross=summary.gross,
        refunded=summary.refunded,
        net=summary.net,
        paid_bookings=summary.paid_bookings,
    )


@router.get(
    "/routes/{route_id}/seats/{seat_number}",
    response_model=SeatAvailabilityResponse,
)
def seat_availability(
    route_id: str,
    seat_number: int,
    travel_date: date,
    reports: ReportingService = Depends(get_reporting_service),
):
    try:
        taken = reports.is_seat_taken(route_id, travel_date, seat_number)
    except NotFoundError as exc:
        raise _http_error(exc) from exc

    return SeatAvailabilityResponse(
        route_id=route_id,
        travel_date=travel_date,
        seat_number=seat_number,
        taken=taken,
    )


@router.get("/reports/daily", response_class=PlainTextResponse)
def daily_report(
    request: Request,
    day: date,
    reports: ReportingService = Depends(get_reporting_service),
):
    report = reports.daily_report(day)
    return templates.TemplateResponse(
        request,
        "daily_report.txt",
        {
            "report": report,
            "currency": get_settings().currency,
        },
        media_type="text/plain",
    )


@router.get("/outbox/events", response_model=list[OutboxEventResponse])
def list_outbox_events(
    status_filter: str = "PENDING",
    limit: int = 50,
    db: Session = Depends(get_db),
):
    safe_limit = max(1, min(limit, 200))
    events = OutboxRepository(db).list_by_status(status_filter, safe_limit)
    return [_outbox_response(item) for item in events]


@router.post("/outbox/events/{event_id}/mark-published", response_model=OutboxEventResponse)
def mark_outbox_event_published(
    event_id: str,
    db: Session = Depends(get_db),
):
    outbox = OutboxRepository(db)
    item = outbox.get_by_id(event_id)
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Outbox event not found",
        )

    outbox.mark_published(item)
    return _outbox_response(item)


def _outbox_response(item) -> OutboxEventResponse:
    return OutboxEventResponse(
        id=item.id,
        aggregate_type=item.aggregate_type,
        aggregate_id=item.aggregate_id,
        event_type=item.event_type,
        status=item.status,
        attempts=item.attempts,
        created_at=item.created_at.isoformat(),
    )
