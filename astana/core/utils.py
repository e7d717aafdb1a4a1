from __future__ import annotations


def money(value: int | None) -> str:
    """Format an integer rupiah amount as ``Rp 200.000``."""
    amount = int(value or 0)
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {abs(amount):,}".replace(",", ".")


def money_short(value: int | None) -> str:
    # Rounds half up, and picks the unit after rounding.
    amount = int(value or 0)
    if amount < 1000:
        return str(amount)
    thousands = (amount + 500) // 1000
    if thousands < 1000:
        return f"{thousands}rb"
    tenths = (amount + 50_000) // 100_000
    return f"{tenths // 10}.{tenths % 10}jt"


def ceil_div(total: int, size: int) -> int:
    return max(1, (total + size - 1) // size)
