from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from astana.core.errors import (
    DuplicateBlockCodeError,
    DuplicateGraveNumberError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from astana.core.extensions import db
from astana.core.models import (
    MAX_HEIRS_PER_GRAVE,
    Block,
    BlockStatus,
    Grave,
    Heir,
    Payment,
    Settings,
)
from astana.core.utils import ceil_div

logger = logging.getLogger(__name__)

# Signed 64-bit INTEGER range of the store.
STORE_INT_MIN = -(2**63)
STORE_INT_MAX = 2**63 - 1


@dataclass
class GravePage:
    items: list[Grave]
    total_count: int
    total_pages: int
    page: int
    page_size: int

    def to_dict(self) -> dict[str, object]:
        return {
            "items": [grave.to_dict() for grave in self.items],
            "total_count": self.total_count,
            "total_pages": self.total_pages,
            "page": self.page,
            "page_size": self.page_size,
        }


@dataclass
class BlockStats:
    total_capacity: int
    occupied: int
    available: int = field(init=False)

    def __post_init__(self) -> None:
        self.available = self.total_capacity - self.occupied

    def to_dict(self) -> dict[str, int]:
        return {
            "total_capacity": self.total_capacity,
            "occupied": self.occupied,
            "available": self.available,
        }


def _clean(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_iso_date(value: object, field_name: str) -> date:
    if isinstance(value, date):
        return value
    raw = _clean(value)
    if not raw:
        raise ValidationError(f"{field_name} wajib diisi")
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError(f"Format tanggal tidak valid untuk {field_name}") from exc


def _parse_optional_iso_date(value: object, field_name: str) -> date | None:
    if value is None or _clean(value) == "":
        return None
    return parse_iso_date(value, field_name)


def fits_store_int(number: int) -> bool:
    return STORE_INT_MIN <= number <= STORE_INT_MAX


def parse_int(value: object, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} harus berupa angka")
    if isinstance(value, int):
        number = value
    else:
        raw = _clean(value)
        if not raw:
            raise ValidationError(f"{field_name} wajib diisi")
        try:
            number = int(raw)
        except ValueError as exc:
            raise ValidationError(f"{field_name} harus berupa angka") from exc
    if not fits_store_int(number):
        raise ValidationError(f"{field_name} di luar batas yang diizinkan")
    return number


def parse_positive_int(value: object, field_name: str) -> int:
    number = parse_int(value, field_name)
    if number <= 0:
        raise ValidationError(f"{field_name} harus lebih dari 0")
    return number


def _clean_block_code(value: object) -> str:
    code = _clean(value).upper()
    if not code:
        raise ValidationError("Kode blok wajib diisi")
    if len(code) != 1 or not ("A" <= code <= "Z"):
        raise ValidationError("Kode blok harus 1 huruf")
    return code


def _clean_block_status(value: object) -> str:
    status = _clean(value).lower() or BlockStatus.ACTIVE.value
    if status not in {s.value for s in BlockStatus}:
        raise ValidationError("Status blok tidak valid")
    return status


# ==================== BLOCKS ====================


def get_blocks() -> list[Block]:
    return Block.query.order_by(Block.code.asc()).all()


def get_block_by_id(block_id: int) -> Block | None:
    if not fits_store_int(block_id):
        return None
    return db.session.get(Block, block_id)


def block_by_id(block_id: int) -> Block:
    block = get_block_by_id(block_id)
    if not block:
        raise NotFoundError("Data blok tidak ditemukan")
    return block


def create_block(payload: dict[str, object]) -> Block:
    code = _clean_block_code(payload.get("code"))
    total_capacity = parse_positive_int(payload.get("total_capacity"), "Kapasitas total")
    annual_fee = parse_positive_int(payload.get("annual_fee"), "Harga iuran")
    status = _clean_block_status(payload.get("status"))
    if Block.query.filter_by(code=code).first():
        raise DuplicateBlockCodeError(f"Kode blok {code} sudah digunakan")

    block = Block(
        code=code,
        description=_clean(payload.get("description")),
        total_capacity=total_capacity,
        annual_fee=annual_fee,
        status=status,
    )
    db.session.add(block)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateBlockCodeError(f"Kode blok {code} sudah digunakan") from exc
    logger.info("Block %s created (fee=%s, capacity=%s)", block.code, block.annual_fee, block.total_capacity)
    return block


def update_block(block_id: int, payload: dict[str, object]) -> Block:
    block = block_by_id(block_id)
    changes: dict[str, object] = {}
    if payload.get("description") is not None:
        changes["description"] = _clean(payload["description"])
    if payload.get("total_capacity") is not None:
        changes["total_capacity"] = parse_positive_int(payload["total_capacity"], "Kapasitas total")
    if payload.get("annual_fee") is not None:
        changes["annual_fee"] = parse_positive_int(payload["annual_fee"], "Harga iuran")
    if payload.get("status") is not None:
        changes["status"] = _clean_block_status(payload["status"])
    for key, value in changes.items():
        setattr(block, key, value)
    db.session.add(block)
    db.session.commit()
    return block


def delete_block(block_id: int) -> None:
    block = block_by_id(block_id)
    grave_count = db.session.query(func.count(Grave.id)).filter(Grave.block_id == block.id).scalar()
    if grave_count:
        logger.warning("Refused to delete block %s: %s grave(s) attached", block.code, grave_count)
        raise ReferentialIntegrityError(
            f"Blok tidak dapat dihapus: masih ada {grave_count} makam terdaftar"
        )
    db.session.delete(block)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ReferentialIntegrityError("Blok tidak dapat dihapus: masih ada makam terdaftar") from exc
    logger.info("Block %s deleted", block.code)


def get_block_stats(block_id: int) -> BlockStats:
    block = block_by_id(block_id)
    occupied = db.session.query(func.count(Grave.id)).filter(Grave.block_id == block.id).scalar()
    return BlockStats(total_capacity=block.total_capacity, occupied=int(occupied or 0))


# ==================== GRAVES ====================


def grave_query(search: str | None, block_id: int | None, include_heirs: bool):
    query = Grave.query
    term = _clean(search)
    if term:
        pattern = f"%{term}%"
        clauses = [Grave.deceased_name.ilike(pattern), Grave.number.ilike(pattern)]
        if include_heirs:
            clauses.append(Grave.heirs.any(Heir.full_name.ilike(pattern)))
        query = query.filter(or_(*clauses))
    if block_id:
        query = query.filter(Grave.block_id == block_id)
    return query


def get_graves(
    search: str | None = None,
    block_id: int | None = None,
    limit: int = 10,
    offset: int = 0,
    include_heirs: bool = True,
) -> list[Grave]:
    return (
        grave_query(search, block_id, include_heirs)
        .options(joinedload(Grave.block))
        .order_by(Grave.created_at.desc(), Grave.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def count_graves(search: str | None = None, block_id: int | None = None, include_heirs: bool = True) -> int:
    return grave_query(search, block_id, include_heirs).count()


def list_graves(
    search: str | None = None,
    block_id: int | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> GravePage:
    size = page_size if page_size is not None else current_app.config.get("PAGE_SIZE", 10)
    if size < 1:
        raise ValidationError("Ukuran halaman harus lebih dari 0")
    if page < 1:
        raise ValidationError("Nomor halaman harus dimulai dari 1")
    total = count_graves(search, block_id)
    items = get_graves(search, block_id, limit=size, offset=(page - 1) * size)
    return GravePage(
        items=items,
        total_count=total,
        total_pages=ceil_div(total, size),
        page=page,
        page_size=size,
    )


def grave_by_id(grave_id: int) -> Grave:
    grave = db.session.get(Grave, grave_id) if fits_store_int(grave_id) else None
    if not grave:
        raise NotFoundError("Data makam tidak ditemukan")
    return grave


def get_grave_detail(grave_id: int) -> dict[str, object]:
    grave = grave_by_id(grave_id)
    return {"grave": grave, "heirs": list(grave.heirs)}


def get_heirs_by_grave(grave_id: int) -> list[Heir]:
    grave = grave_by_id(grave_id)
    return Heir.query.filter_by(grave_id=grave.id).order_by(Heir.order_number.asc()).all()


def _number_taken(block_id: int, number: str, exclude_grave_id: int | None = None) -> bool:
    query = Grave.query.filter_by(block_id=block_id, number=number)
    if exclude_grave_id is not None:
        query = query.filter(Grave.id != exclude_grave_id)
    return db.session.query(query.exists()).scalar()


def _heir_values(heirs: list[dict[str, object]] | None) -> list[dict[str, object]]:
    # The first heir is mandatory; later slots left blank are skipped.
    if heirs is not None and not isinstance(heirs, list):
        raise ValidationError("Data ahli waris tidak valid")
    values: list[dict[str, object]] = []
    for idx, item in enumerate(heirs or []):
        if not isinstance(item, dict):
            raise ValidationError("Data ahli waris tidak valid")
        full_name = _clean(item.get("full_name"))
        if not full_name:
            if idx == 0:
                raise ValidationError("Ahli waris pertama wajib diisi")
            continue
        order_raw = item.get("order_number")
        order_number = parse_int(order_raw, "Urutan ahli waris") if order_raw not in (None, "") else idx + 1
        values.append(
            {
                "order_number": order_number,
                "full_name": full_name,
                "phone_number": _clean(item.get("phone_number")),
                "relationship_label": _clean(item.get("relationship")),
                "address": _clean(item.get("address")),
                "is_primary": order_number == 1,
            }
        )
    if not values:
        raise ValidationError("Minimal 1 ahli waris wajib diisi")
    if len(values) > MAX_HEIRS_PER_GRAVE:
        raise ValidationError(f"Maksimal {MAX_HEIRS_PER_GRAVE} ahli waris per makam")
    orders = [v["order_number"] for v in values]
    if any(o < 1 or o > MAX_HEIRS_PER_GRAVE for o in orders):
        raise ValidationError(f"Urutan ahli waris harus antara 1 dan {MAX_HEIRS_PER_GRAVE}")
    if len(set(orders)) != len(orders):
        raise ValidationError("Urutan ahli waris tidak boleh sama")
    if 1 not in orders:
        raise ValidationError("Ahli waris urutan 1 wajib diisi")
    return values


def _grave_values(payload: dict[str, object]) -> dict[str, object]:
    deceased_name = _clean(payload.get("deceased_name"))
    if not deceased_name:
        raise ValidationError("Nama almarhum wajib diisi")
    if payload.get("block_id") in (None, ""):
        raise ValidationError("Blok makam wajib dipilih")
    block = block_by_id(parse_int(payload.get("block_id"), "Blok makam"))
    number = _clean(payload.get("number"))
    if not number:
        raise ValidationError("Nomor makam wajib diisi")
    return {
        "deceased_name": deceased_name,
        "block_id": block.id,
        "number": number,
        "date_of_death": parse_iso_date(payload.get("date_of_death"), "Tanggal wafat"),
        "burial_date": _parse_optional_iso_date(payload.get("burial_date"), "Tanggal pemakaman"),
        "notes": _clean(payload.get("notes")),
    }


def create_grave_with_heirs(payload: dict[str, object]) -> Grave:
    grave_values = _grave_values(payload.get("grave") or {})
    heir_values = _heir_values(payload.get("heirs"))
    if _number_taken(grave_values["block_id"], grave_values["number"]):
        raise DuplicateGraveNumberError(
            f"Nomor makam {grave_values['number']} sudah terdaftar di blok ini"
        )

    grave = Grave(**grave_values)
    grave.heirs = [Heir(**values) for values in heir_values]
    db.session.add(grave)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateGraveNumberError(
            f"Nomor makam {grave_values['number']} sudah terdaftar di blok ini"
        ) from exc
    logger.info("Grave %s created for %s with %s heir(s)", grave.location_label, grave.deceased_name, len(heir_values))
    return grave


def update_grave(grave_id: int, payload: dict[str, object]) -> Grave:
    # Absent (or null) fields keep their stored value.
    grave = grave_by_id(grave_id)
    changes: dict[str, object] = {}
    if payload.get("deceased_name") is not None:
        changes["deceased_name"] = _clean(payload["deceased_name"])
        if not changes["deceased_name"]:
            raise ValidationError("Nama almarhum wajib diisi")
    block_id = grave.block_id
    if payload.get("block_id") not in (None, ""):
        block_id = block_by_id(parse_int(payload["block_id"], "Blok makam")).id
    number = grave.number
    if payload.get("number") is not None:
        number = _clean(payload["number"])
        if not number:
            raise ValidationError("Nomor makam wajib diisi")
    if (block_id, number) != (grave.block_id, grave.number) and _number_taken(block_id, number, grave.id):
        raise DuplicateGraveNumberError(f"Nomor makam {number} sudah terdaftar di blok ini")
    changes["block_id"] = block_id
    changes["number"] = number
    if payload.get("date_of_death") is not None:
        changes["date_of_death"] = parse_iso_date(payload["date_of_death"], "Tanggal wafat")
    if payload.get("burial_date") is not None:
        changes["burial_date"] = _parse_optional_iso_date(payload["burial_date"], "Tanggal pemakaman")
    if payload.get("notes") is not None:
        changes["notes"] = _clean(payload["notes"])

    for key, value in changes.items():
        setattr(grave, key, value)
    db.session.add(grave)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateGraveNumberError(f"Nomor makam {number} sudah terdaftar di blok ini") from exc
    return grave


def update_grave_heirs(grave_id: int, heirs: list[dict[str, object]] | None) -> list[Heir]:
    grave = grave_by_id(grave_id)
    heir_values = _heir_values(heirs)
    grave.heirs.clear()
    # Flush the deletes first so reused order numbers do not collide.
    db.session.flush()
    grave.heirs.extend(Heir(**values) for values in heir_values)
    db.session.commit()
    return list(grave.heirs)


def delete_grave(grave_id: int) -> None:
    grave = grave_by_id(grave_id)
    label = grave.location_label
    db.session.delete(grave)
    db.session.commit()
    logger.info("Grave %s deleted with its heirs and payments", label)


# ==================== SETTINGS ====================


def get_settings() -> Settings:
    settings = db.session.get(Settings, 1)
    if settings is None:
        settings = Settings(
            id=1,
            foundation_name=current_app.config.get("FOUNDATION_NAME", "Yayasan Wakaf Makam"),
            active_year=date.today().year,
        )
        db.session.add(settings)
        db.session.commit()
    return settings


def update_settings(payload: dict[str, object]) -> Settings:
    settings = get_settings()
    changes: dict[str, object] = {}
    if payload.get("foundation_name") is not None:
        changes["foundation_name"] = _clean(payload["foundation_name"])
        if not changes["foundation_name"]:
            raise ValidationError("Nama yayasan wajib diisi")
    for key in ("address", "phone", "email"):
        if payload.get(key) is not None:
            changes[key] = _clean(payload[key])
    if payload.get("active_year") is not None:
        changes["active_year"] = parse_positive_int(payload["active_year"], "Tahun aktif")
    for key, value in changes.items():
        setattr(settings, key, value)
    db.session.add(settings)
    db.session.commit()
    return settings


def database_stats() -> dict[str, int]:
    return {
        "blocks": db.session.query(func.count(Block.id)).scalar() or 0,
        "graves": db.session.query(func.count(Grave.id)).scalar() or 0,
        "heirs": db.session.query(func.count(Heir.id)).scalar() or 0,
        "payments": db.session.query(func.count(Payment.id)).scalar() or 0,
    }
