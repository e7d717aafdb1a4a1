from __future__ import annotations

import pytest

from astana.cemetery.services import (
    create_block,
    create_grave_with_heirs,
    database_stats,
    delete_block,
    delete_grave,
    get_block_stats,
    get_blocks,
    get_grave_detail,
    get_heirs_by_grave,
    list_graves,
    update_grave,
    update_grave_heirs,
    update_settings,
)
from astana.core.errors import (
    DuplicateBlockCodeError,
    DuplicateGraveNumberError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from astana.core.models import Block, Grave, Heir, Payment
from astana.core.utils import ceil_div, money, money_short


def test_money_formatting():
    assert money(200000) == "Rp 200.000"
    assert money(1250000) == "Rp 1.250.000"
    assert money(0) == "Rp 0"
    assert money_short(1500000) == "1.5jt"
    assert money_short(200000) == "200rb"
    assert money_short(999_999) == "1.0jt"
    assert money_short(999_499) == "999rb"
    assert money_short(1500) == "2rb"
    assert money_short(2500) == "3rb"
    assert money_short(1_049_999) == "1.0jt"
    assert money_short(1_050_000) == "1.1jt"
    assert money_short(750) == "750"
    assert ceil_div(0, 10) == 1
    assert ceil_div(25, 10) == 3


def test_blocks_are_listed_by_code(app):
    with app.app_context():
        assert [b.code for b in get_blocks()] == ["A", "B", "C"]


def test_duplicate_block_code_is_rejected(app):
    with app.app_context():
        create_block({"code": "D", "total_capacity": 20, "annual_fee": 120000})
        with pytest.raises(DuplicateBlockCodeError):
            create_block({"code": "d", "total_capacity": 10, "annual_fee": 90000})
        assert Block.query.filter_by(code="D").count() == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"code": "AB", "total_capacity": 10, "annual_fee": 100000},
        {"code": "1", "total_capacity": 10, "annual_fee": 100000},
        {"code": "", "total_capacity": 10, "annual_fee": 100000},
        {"code": "E", "total_capacity": 0, "annual_fee": 100000},
        {"code": "E", "total_capacity": 10, "annual_fee": 0},
        {"code": "E", "total_capacity": 10, "annual_fee": 100000, "status": "closed"},
    ],
)
def test_block_validation(app, payload):
    with app.app_context():
        with pytest.raises(ValidationError):
            create_block(payload)


def test_block_with_graves_cannot_be_deleted(app, block_a):
    with app.app_context():
        graves_before = Grave.query.count()
        with pytest.raises(ReferentialIntegrityError) as exc:
            delete_block(block_a.id)
        assert "2 makam" in exc.value.message
        assert Block.query.filter_by(code="A").count() == 1
        assert Grave.query.count() == graves_before


def test_empty_block_can_be_deleted(app):
    with app.app_context():
        block_id = Block.query.filter_by(code="C").first().id
        delete_block(block_id)
        assert Block.query.filter_by(code="C").first() is None
        with pytest.raises(NotFoundError):
            delete_block(block_id)


def test_block_stats(app, block_a):
    with app.app_context():
        stats = get_block_stats(block_a.id)
        assert stats.to_dict() == {"total_capacity": 50, "occupied": 2, "available": 48}


def test_create_grave_with_heirs(app, grave_payload):
    with app.app_context():
        grave = create_grave_with_heirs(
            grave_payload(
                heirs=[
                    {"full_name": "Yusuf Basri", "relationship": "anak"},
                    {"full_name": ""},
                    {"full_name": "Maryam", "order_number": 3},
                ]
            )
        )
        heirs = get_heirs_by_grave(grave.id)
        assert [(h.order_number, h.full_name, h.is_primary) for h in heirs] == [
            (1, "Yusuf Basri", True),
            (3, "Maryam", False),
        ]
        assert grave.location_label == "A-10"


@pytest.mark.parametrize(
    "heirs",
    [
        [],
        None,
        [{"full_name": ""}, {"full_name": "Kedua"}],
        [{"full_name": f"Waris {i}"} for i in range(4)],
        [{"full_name": "Satu", "order_number": 1}, {"full_name": "Dua", "order_number": 1}],
        [{"full_name": "Kedua", "order_number": 2}],
        [{"full_name": "Dua", "order_number": 2}, {"full_name": "Tiga", "order_number": 3}],
        "bukan daftar",
    ],
)
def test_create_grave_rejects_bad_heirs(app, grave_payload, heirs):
    with app.app_context():
        payload = grave_payload()
        payload["heirs"] = heirs
        with pytest.raises(ValidationError):
            create_grave_with_heirs(payload)
        assert Grave.query.filter_by(deceased_name="Hasan Basri").count() == 0


def test_create_grave_requires_existing_block(app, grave_payload):
    with app.app_context():
        payload = grave_payload()
        payload["grave"]["block_id"] = 9999
        with pytest.raises(NotFoundError):
            create_grave_with_heirs(payload)


def test_duplicate_grave_number_in_block(app, grave_payload):
    with app.app_context():
        with pytest.raises(DuplicateGraveNumberError):
            create_grave_with_heirs(grave_payload(number="01"))


def test_update_grave_keeps_absent_fields(app, ahmad):
    with app.app_context():
        updated = update_grave(ahmad.id, {"notes": "Pindah nisan"})
        assert updated.notes == "Pindah nisan"
        assert updated.deceased_name == "Ahmad Sulaiman"
        assert updated.number == "01"


def test_update_grave_to_taken_number_leaves_grave_untouched(app, ahmad):
    with app.app_context():
        with pytest.raises(DuplicateGraveNumberError):
            update_grave(ahmad.id, {"number": "02", "notes": "tidak tersimpan"})
        grave = get_grave_detail(ahmad.id)["grave"]
        assert grave.number == "01"
        assert grave.notes == ""


def test_update_grave_heirs_replaces_set(app, ahmad):
    with app.app_context():
        heirs = update_grave_heirs(
            ahmad.id,
            [{"full_name": "Nur Aisyah", "relationship": "istri"}, {"full_name": "Rahmat Sulaiman"}],
        )
        assert [(h.order_number, h.full_name) for h in heirs] == [(1, "Nur Aisyah"), (2, "Rahmat Sulaiman")]
        assert [h.is_primary for h in heirs] == [True, False]
        assert Heir.query.filter_by(grave_id=ahmad.id).count() == 2


def test_delete_grave_cascades_heirs_and_payments(app, ahmad):
    with app.app_context():
        grave_id = ahmad.id
        delete_grave(grave_id)
        assert Heir.query.filter_by(grave_id=grave_id).count() == 0
        assert Payment.query.filter_by(grave_id=grave_id).count() == 0
        with pytest.raises(NotFoundError):
            get_grave_detail(grave_id)


def test_list_graves_pagination(app):
    with app.app_context():
        block = create_block({"code": "P", "total_capacity": 50, "annual_fee": 100000})
        for i in range(25):
            create_grave_with_heirs(
                {
                    "grave": {
                        "deceased_name": f"Paginasi {i:02d}",
                        "block_id": block.id,
                        "number": f"{i + 1:02d}",
                        "date_of_death": "2022-01-01",
                    },
                    "heirs": [{"full_name": f"Waris {i:02d}"}],
                }
            )

        first = list_graves(search="paginasi", page=1, page_size=10)
        assert len(first.items) == 10
        assert first.total_count == 25
        assert first.total_pages == 3
        assert first.items[0].deceased_name == "Paginasi 24"

        last = list_graves(search="paginasi", page=3, page_size=10)
        assert len(last.items) == 5

        assert list_graves(search="paginasi", page=4, page_size=10).items == []
        with pytest.raises(ValidationError):
            list_graves(search="paginasi", page=0, page_size=10)


def test_list_graves_default_page_size_and_filters(app, block_a):
    with app.app_context():
        page = list_graves()
        assert page.page_size == 10
        assert page.total_count == 3
        assert page.total_pages == 1

        by_heir = list_graves(search="dewi")
        assert [g.deceased_name for g in by_heir.items] == ["Siti Aminah"]

        by_block = list_graves(block_id=block_a.id)
        assert {g.number for g in by_block.items} == {"01", "02"}


def test_settings_update_and_stats(app):
    with app.app_context():
        settings = update_settings({"active_year": 2025, "phone": "0812"})
        assert settings.active_year == 2025
        assert settings.foundation_name == "Yayasan Wakaf Makam Al-Ikhlas"
        with pytest.raises(ValidationError):
            update_settings({"foundation_name": "  "})
        assert database_stats() == {"blocks": 3, "graves": 3, "heirs": 4, "payments": 3}
