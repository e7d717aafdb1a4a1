from __future__ import annotations

from flask import has_request_context, session

SUPPORTED_LANGS = {"id", "en"}
DEFAULT_LANG = "id"

I18N: dict[str, dict[str, str]] = {
    "status.paid": {"id": "Lunas", "en": "Paid"},
    "status.unpaid": {"id": "Belum Bayar", "en": "Unpaid"},
    "method.cash": {"id": "Tunai", "en": "Cash"},
    "method.transfer": {"id": "Transfer Bank", "en": "Bank transfer"},
    "method.qris": {"id": "QRIS", "en": "QRIS"},
    "error.internal": {
        "id": "Terjadi kesalahan pada basis data",
        "en": "A database error occurred",
    },
    "error.unauthorized": {"id": "Silakan masuk terlebih dahulu", "en": "Please log in first"},
    "error.forbidden": {"id": "Akses ditolak", "en": "Access denied"},
    "error.not_found": {"id": "Data tidak ditemukan", "en": "Not found"},
}


def get_locale() -> str:
    if not has_request_context():
        return DEFAULT_LANG
    lang = session.get("lang", DEFAULT_LANG)
    if lang not in SUPPORTED_LANGS:
        return DEFAULT_LANG
    return lang


def translate(key: str) -> str:
    lang = get_locale()
    return I18N.get(key, {}).get(lang, key)


def payment_method_label(method: str) -> str:
    key = f"method.{(method or '').lower()}"
    if key not in I18N:
        return method
    return translate(key)
