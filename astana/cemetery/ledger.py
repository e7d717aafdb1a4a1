"""Per-grave, per-year payment ledger.

A year is paid when a Payment row exists for (grave, year). Paid years are
valued at the amount actually recorded; unpaid years at the block's current
annual fee, so a fee change moves the arrears but never rewrites history.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from astana.cemetery.services import (
    _clean,
    count_graves,
    fits_store_int,
    get_graves,
    get_settings,
    grave_by_id,
    parse_int,
    parse_iso_date,
    parse_positive_int,
)
from astana.core.errors import DuplicateYearError, NotFoundError, ValidationError
from astana.core.extensions import db
from astana.core.i18n import translate
from astana.core.models import Grave, Payment, PaymentMethod
from astana.core.utils import ceil_div, money_short

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class YearStatus:
    year: int
    is_paid: bool
    amount: int
    payment: Payment | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, object]:
        return {
            "year": self.year,
            "is_paid": self.is_paid,
            "amount": self.amount,
            "payment_id": self.payment.id if self.payment else None,
            "status_label": translate("status.paid" if self.is_paid else "status.unpaid"),
        }


@dataclass
class GraveSummary:
    years_paid: int = 0
    total_paid: int = 0
    per_year: list[YearStatus] = field(default_factory=list)

    @property
    def years_unpaid(self) -> int:
        return sum(1 for status in self.per_year if not status.is_paid)

    def to_dict(self) -> dict[str, object]:
        return {
            "years_paid": self.years_paid,
            "total_paid": self.total_paid,
            "per_year": [status.to_dict() for status in self.per_year],
        }


@dataclass
class PaymentRequest:
    grave_id: int
    year: int
    payment_date: date
    amount: int
    payment_method: str = PaymentMethod.CASH.value
    paid_by: str = ""
    notes: str = ""

    @classmethod
    def build(
        cls,
        grave_id: object,
        year: object,
        payment_date: object,
        amount: object,
        method: object = None,
        paid_by: object = None,
        notes: object = None,
    ) -> "PaymentRequest":
        if grave_id in (None, ""):
            raise ValidationError("Makam wajib dipilih")
        return cls(
            grave_id=parse_int(grave_id, "Makam"),
            year=parse_int(year, "Tahun"),
            payment_date=parse_iso_date(payment_date, "Tanggal bayar"),
            amount=parse_positive_int(amount, "Jumlah bayar"),
            payment_method=_clean(method).lower() or PaymentMethod.CASH.value,
            paid_by=_clean(paid_by),
            notes=_clean(notes),
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "PaymentRequest":
        return cls.build(
            payload.get("grave_id"),
            payload.get("year"),
            payload.get("payment_date"),
            payload.get("amount"),
            payload.get("payment_method"),
            payload.get("paid_by"),
            payload.get("notes"),
        )


def year_status(year: int, payment: Payment | None, annual_fee: int) -> YearStatus:
    if payment is not None:
        return YearStatus(year=year, is_paid=True, amount=payment.amount, payment=payment)
    return YearStatus(year=year, is_paid=False, amount=annual_fee)


def fold_ledger(
    payments_by_year: Mapping[int, Payment],
    start_year: int,
    end_year: int,
    annual_fee: int,
) -> GraveSummary:
    summary = GraveSummary()
    for year in range(start_year, end_year + 1):
        status = year_status(year, payments_by_year.get(year), annual_fee)
        if status.is_paid:
            summary.years_paid += 1
            summary.total_paid += status.amount
        summary.per_year.append(status)
    return summary


def arrears(summary: GraveSummary, annual_fee: int) -> int:
    return summary.years_unpaid * annual_fee


# ==================== QUERIES ====================


def get_payment_by_grave_and_year(grave_id: int, year: int) -> Payment | None:
    return Payment.query.filter_by(grave_id=grave_id, year=year).first()


def get_payments_by_grave(grave_id: int) -> list[Payment]:
    grave = grave_by_id(grave_id)
    return Payment.query.filter_by(grave_id=grave.id).order_by(Payment.year.desc()).all()


def payments_in_range(grave_ids: Iterable[int], start_year: int, end_year: int) -> dict[int, dict[int, Payment]]:
    ids = list(grave_ids)
    by_grave: dict[int, dict[int, Payment]] = {grave_id: {} for grave_id in ids}
    if not ids or start_year > end_year:
        return by_grave
    rows = (
        Payment.query.filter(Payment.grave_id.in_(ids))
        .filter(Payment.year >= start_year, Payment.year <= end_year)
        .all()
    )
    for payment in rows:
        by_grave[payment.grave_id][payment.year] = payment
    return by_grave


def get_year_status(grave_id: int, year: object) -> YearStatus:
    grave = grave_by_id(grave_id)
    target_year = parse_int(year, "Tahun")
    payment = get_payment_by_grave_and_year(grave.id, target_year)
    return year_status(target_year, payment, grave.block.annual_fee)


def summarize(grave: Grave | int, start_year: int, end_year: int) -> GraveSummary:
    if not isinstance(grave, Grave):
        grave = grave_by_id(grave)
    payments = payments_in_range([grave.id], start_year, end_year)[grave.id]
    return fold_ledger(payments, start_year, end_year, grave.block.annual_fee)


def get_graves_with_payment_summary(
    search: str | None = None,
    block_id: int | None = None,
    year: int | None = None,
    limit: int = 10,
    offset: int = 0,
) -> list[dict[str, object]]:
    target_year = year if year is not None else get_settings().active_year
    window = current_app.config.get("RECENT_YEARS", 5)
    start_year = target_year - window + 1
    graves = get_graves(search, block_id, limit=limit, offset=offset, include_heirs=False)
    payments = payments_in_range([grave.id for grave in graves], start_year, target_year)

    rows = []
    for grave in graves:
        fee = grave.block.annual_fee
        summary = fold_ledger(payments[grave.id], start_year, target_year, fee)
        row = grave.to_dict()
        row["recent_payments"] = [
            {
                "year": status.year,
                "is_paid": status.is_paid,
                "amount": status.amount,
                "label": money_short(status.amount),
            }
            for status in summary.per_year
        ]
        row["years_paid"] = summary.years_paid
        row["total_paid"] = summary.total_paid
        row["arrears"] = arrears(summary, fee)
        rows.append(row)
    return rows


def list_payment_summary(
    search: str | None = None,
    block_id: int | None = None,
    year: int | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> dict[str, object]:
    size = page_size if page_size is not None else current_app.config.get("PAGE_SIZE", 10)
    if size < 1:
        raise ValidationError("Ukuran halaman harus lebih dari 0")
    if page < 1:
        raise ValidationError("Nomor halaman harus dimulai dari 1")
    target_year = year if year is not None else get_settings().active_year
    total = count_graves(search, block_id, include_heirs=False)
    items = get_graves_with_payment_summary(
        search,
        block_id,
        target_year,
        limit=size,
        offset=(page - 1) * size,
    )
    return {
        "items": items,
        "year": target_year,
        "total_count": total,
        "total_pages": ceil_div(total, size),
        "page": page,
        "page_size": size,
    }


# ==================== COMMANDS ====================


def _store_payment(request: PaymentRequest) -> Payment:
    grave = grave_by_id(request.grave_id)
    if get_payment_by_grave_and_year(grave.id, request.year):
        logger.warning("Rejected duplicate payment for grave %s year %s", grave.location_label, request.year)
        raise DuplicateYearError(f"Pembayaran tahun {request.year} sudah tercatat untuk makam ini")

    payment = Payment(
        grave_id=grave.id,
        year=request.year,
        payment_date=request.payment_date,
        amount=request.amount,
        payment_method=request.payment_method,
        paid_by=request.paid_by,
        notes=request.notes,
    )
    db.session.add(payment)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateYearError(f"Pembayaran tahun {request.year} sudah tercatat untuk makam ini") from exc
    logger.info(
        "Payment recorded for grave %s year %s: %s via %s",
        grave.location_label,
        payment.year,
        payment.amount,
        payment.payment_method,
    )
    return payment


def record_payment(
    grave_id: int,
    year: int,
    payment_date: date | str,
    amount: int,
    method: str = PaymentMethod.CASH.value,
    paid_by: str | None = None,
    notes: str | None = None,
) -> Payment:
    request = PaymentRequest.build(grave_id, year, payment_date, amount, method, paid_by, notes)
    return _store_payment(request)


def create_payment(payload: Mapping[str, object]) -> Payment:
    return _store_payment(PaymentRequest.from_payload(payload))


def delete_payment(payment_id: int) -> None:
    payment = db.session.get(Payment, payment_id) if fits_store_int(payment_id) else None
    if not payment:
        raise NotFoundError("Data pembayaran tidak ditemukan")
    grave_id, year = payment.grave_id, payment.year
    db.session.delete(payment)
    db.session.commit()
    logger.info("Payment deleted for grave %s year %s", grave_id, year)
