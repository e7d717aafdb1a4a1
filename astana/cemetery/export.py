from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
import logging

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from sqlalchemy import func

from astana.cemetery.ledger import YearStatus, arrears, fold_ledger, payments_in_range
from astana.cemetery.services import get_settings, grave_query
from astana.core.errors import ValidationError
from astana.core.extensions import db
from astana.core.models import Block, Grave, Payment
from astana.core.utils import money

logger = logging.getLogger(__name__)

SHEET_TITLE = "Data Pembayaran"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
LEAD_COLUMNS = (("No", 5), ("Nama Almarhum", 25), ("Blok", 8), ("Nomor Makam", 12), ("Iuran Tahunan", 15))
STATUS_WIDTH = 20
TAIL_COLUMNS = (("Total Dibayar", 15), ("Jumlah Tahun Lunas", 10))


@dataclass
class PaymentExport:
    start_year: int
    end_year: int
    graves: list[dict[str, object]] = field(default_factory=list)

    @property
    def years(self) -> list[int]:
        return list(range(self.start_year, self.end_year + 1))


def _default_year_bounds() -> tuple[int, int]:
    low, high = db.session.query(func.min(Payment.year), func.max(Payment.year)).one()
    if low is None or high is None:
        active_year = get_settings().active_year
        return active_year, active_year
    return int(low), int(high)


def export_graves(
    search: str | None = None,
    block_id: int | None = None,
    start_year: int | None = None,
    end_year: int | None = None,
) -> PaymentExport:
    if start_year is None or end_year is None:
        low, high = _default_year_bounds()
        start_year = low if start_year is None else start_year
        end_year = high if end_year is None else end_year
    if start_year > end_year:
        raise ValidationError("Tahun awal tidak boleh lebih besar dari tahun akhir")

    graves = (
        grave_query(search, block_id, include_heirs=False)
        .join(Grave.block)
        .order_by(Block.code.asc(), Grave.number.asc())
        .all()
    )
    payments = payments_in_range([grave.id for grave in graves], start_year, end_year)

    export = PaymentExport(start_year=start_year, end_year=end_year)
    for grave in graves:
        fee = grave.block.annual_fee
        summary = fold_ledger(payments[grave.id], start_year, end_year, fee)
        export.graves.append(
            {
                "id": grave.id,
                "deceased_name": grave.deceased_name,
                "block_code": grave.block.code,
                "number": grave.number,
                "annual_fee": fee,
                "payments": summary.per_year,
                "years_paid": summary.years_paid,
                "total_paid": summary.total_paid,
                "arrears": arrears(summary, fee),
            }
        )
    return export


def status_label(status: YearStatus) -> str:
    if status.is_paid:
        return f"Lunas ({money(status.amount)})"
    return "Belum Bayar"


def build_payment_workbook(export: PaymentExport) -> bytes:
    if not export.graves:
        raise ValidationError("Tidak ada data untuk diekspor")

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    headers = [title for title, _ in LEAD_COLUMNS]
    headers += [f"Status {year}" for year in export.years]
    headers += [title for title, _ in TAIL_COLUMNS]
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for idx, row in enumerate(export.graves, start=1):
        fee = row["annual_fee"]
        ws.append(
            [
                idx,
                row["deceased_name"],
                row["block_code"],
                row["number"],
                money(fee) if fee else "-",
                *[status_label(status) for status in row["payments"]],
                money(row["total_paid"]),
                row["years_paid"],
            ]
        )

    widths = [width for _, width in LEAD_COLUMNS]
    widths += [STATUS_WIDTH] * len(export.years)
    widths += [width for _, width in TAIL_COLUMNS]
    for i, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width
    ws.freeze_panes = "A2"

    output = BytesIO()
    wb.save(output)
    logger.info(
        "Payment workbook built: %s grave(s), years %s-%s",
        len(export.graves),
        export.start_year,
        export.end_year,
    )
    return output.getvalue()


def export_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M")
    return f"Data_Pembayaran_{stamp}.xlsx"
