from __future__ import annotations

from io import BytesIO

from flask import current_app, jsonify, request, send_file
from flask_login import login_required

from astana.cemetery import cemetery_bp
from astana.cemetery.export import XLSX_MIMETYPE, build_payment_workbook, export_filename, export_graves
from astana.cemetery.ledger import (
    arrears,
    create_payment,
    delete_payment,
    get_payment_by_grave_and_year,
    get_payments_by_grave,
    get_year_status,
    list_payment_summary,
    summarize,
)
from astana.cemetery.services import (
    block_by_id,
    create_block,
    create_grave_with_heirs,
    database_stats,
    delete_block,
    delete_grave,
    get_block_stats,
    get_blocks,
    get_grave_detail,
    get_heirs_by_grave,
    get_settings,
    grave_by_id,
    list_graves,
    parse_int,
    update_block,
    update_grave,
    update_grave_heirs,
    update_settings,
)
from astana.core.errors import ValidationError
from astana.core.i18n import payment_method_label
from astana.core.permissions import require_role


def _payload() -> dict[str, object]:
    data = request.get_json(silent=True)
    if data is None:
        return dict(request.form.items())
    if not isinstance(data, dict):
        raise ValidationError("Format data tidak valid")
    return data


def _arg_int(name: str, label: str, default: int | None = None) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    return parse_int(raw, label)


def _arg_text(name: str) -> str:
    return (request.args.get(name) or "").strip()


def _checked_page(page: int, total_pages: int) -> None:
    if page > total_pages:
        raise ValidationError(f"Halaman {page} di luar jangkauan (maksimal {total_pages})")


def _payment_dict(payment) -> dict[str, object]:
    data = payment.to_dict()
    data["payment_method_label"] = payment_method_label(payment.payment_method)
    return data


# ==================== BLOCKS ====================


@cemetery_bp.get("/blocks")
@login_required
def blocks_index():
    return jsonify({"items": [block.to_dict() for block in get_blocks()]})


@cemetery_bp.post("/blocks")
@login_required
@require_role("admin")
def blocks_create():
    block = create_block(_payload())
    return jsonify(block.to_dict()), 201


@cemetery_bp.get("/blocks/<int:block_id>")
@login_required
def blocks_show(block_id: int):
    return jsonify(block_by_id(block_id).to_dict())


@cemetery_bp.patch("/blocks/<int:block_id>")
@login_required
@require_role("admin")
def blocks_update(block_id: int):
    block = update_block(block_id, _payload())
    return jsonify(block.to_dict())


@cemetery_bp.delete("/blocks/<int:block_id>")
@login_required
@require_role("admin")
def blocks_delete(block_id: int):
    delete_block(block_id)
    return jsonify({"ok": True})


@cemetery_bp.get("/blocks/<int:block_id>/stats")
@login_required
def blocks_stats(block_id: int):
    return jsonify(get_block_stats(block_id).to_dict())


# ==================== GRAVES ====================


@cemetery_bp.get("/graves")
@login_required
def graves_index():
    page = _arg_int("page", "Halaman", 1)
    result = list_graves(
        search=_arg_text("search"),
        block_id=_arg_int("block_id", "Blok makam"),
        page=page,
    )
    _checked_page(page, result.total_pages)
    return jsonify(result.to_dict())


@cemetery_bp.post("/graves")
@login_required
def graves_create():
    grave = create_grave_with_heirs(_payload())
    return jsonify({"grave": grave.to_dict(), "heirs": [heir.to_dict() for heir in grave.heirs]}), 201


@cemetery_bp.get("/graves/<int:grave_id>")
@login_required
def graves_show(grave_id: int):
    detail = get_grave_detail(grave_id)
    return jsonify(
        {
            "grave": detail["grave"].to_dict(),
            "heirs": [heir.to_dict() for heir in detail["heirs"]],
        }
    )


@cemetery_bp.patch("/graves/<int:grave_id>")
@login_required
def graves_update(grave_id: int):
    grave = update_grave(grave_id, _payload())
    return jsonify(grave.to_dict())


@cemetery_bp.delete("/graves/<int:grave_id>")
@login_required
def graves_delete(grave_id: int):
    delete_grave(grave_id)
    return jsonify({"ok": True})


@cemetery_bp.get("/graves/<int:grave_id>/heirs")
@login_required
def graves_heirs(grave_id: int):
    return jsonify({"items": [heir.to_dict() for heir in get_heirs_by_grave(grave_id)]})


@cemetery_bp.put("/graves/<int:grave_id>/heirs")
@login_required
def graves_heirs_replace(grave_id: int):
    payload = request.get_json(silent=True)
    heirs = payload.get("heirs") if isinstance(payload, dict) else payload
    items = update_grave_heirs(grave_id, heirs)
    return jsonify({"items": [heir.to_dict() for heir in items]})


@cemetery_bp.get("/graves/<int:grave_id>/years/<int:year>")
@login_required
def graves_year_status(grave_id: int, year: int):
    return jsonify(get_year_status(grave_id, year).to_dict())


@cemetery_bp.get("/graves/<int:grave_id>/summary")
@login_required
def graves_summary(grave_id: int):
    grave = grave_by_id(grave_id)
    end_year = _arg_int("end_year", "Tahun akhir", get_settings().active_year)
    window = current_app.config.get("RECENT_YEARS", 5)
    start_year = _arg_int("start_year", "Tahun awal", end_year - window + 1)
    summary = summarize(grave, start_year, end_year)
    data = summary.to_dict()
    data.update(
        {
            "grave_id": grave.id,
            "start_year": start_year,
            "end_year": end_year,
            "annual_fee": grave.block.annual_fee,
            "arrears": arrears(summary, grave.block.annual_fee),
        }
    )
    return jsonify(data)


@cemetery_bp.get("/graves/<int:grave_id>/payments")
@login_required
def graves_payments(grave_id: int):
    return jsonify({"items": [_payment_dict(p) for p in get_payments_by_grave(grave_id)]})


# ==================== PAYMENTS ====================


@cemetery_bp.get("/payments/lookup")
@login_required
def payments_lookup():
    grave_id = _arg_int("grave_id", "Makam")
    year = _arg_int("year", "Tahun")
    if grave_id is None or year is None:
        raise ValidationError("Parameter grave_id dan year wajib diisi")
    payment = get_payment_by_grave_and_year(grave_id, year)
    return jsonify({"payment": _payment_dict(payment) if payment else None})


@cemetery_bp.post("/payments")
@login_required
def payments_create():
    payment = create_payment(_payload())
    return jsonify(_payment_dict(payment)), 201


@cemetery_bp.delete("/payments/<int:payment_id>")
@login_required
def payments_delete(payment_id: int):
    delete_payment(payment_id)
    return jsonify({"ok": True})


@cemetery_bp.get("/payments/summary")
@login_required
def payments_summary():
    page = _arg_int("page", "Halaman", 1)
    result = list_payment_summary(
        search=_arg_text("search"),
        block_id=_arg_int("block_id", "Blok makam"),
        year=_arg_int("year", "Tahun"),
        page=page,
    )
    _checked_page(page, result["total_pages"])
    return jsonify(result)


@cemetery_bp.get("/payments/export")
@login_required
def payments_export():
    export = export_graves(
        search=_arg_text("search"),
        block_id=_arg_int("block_id", "Blok makam"),
        start_year=_arg_int("start_year", "Tahun awal"),
        end_year=_arg_int("end_year", "Tahun akhir"),
    )
    content = build_payment_workbook(export)
    return send_file(
        BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=export_filename(),
    )


# ==================== SETTINGS ====================


@cemetery_bp.get("/settings")
@login_required
def settings_show():
    return jsonify(get_settings().to_dict())


@cemetery_bp.patch("/settings")
@login_required
@require_role("admin")
def settings_update():
    return jsonify(update_settings(_payload()).to_dict())


@cemetery_bp.get("/stats")
@login_required
def stats():
    return jsonify(database_stats())
