from __future__ import annotations

from io import BytesIO

from openpyxl import load_workbook

from astana.core.models import Block, Payment


def test_api_requires_login(client):
    response = client.get("/api/graves")
    assert response.status_code == 401
    assert response.get_json()["error"] == "unauthorized"


def test_login_rejects_wrong_password(client):
    response = client.post("/auth/login", json={"email": "admin@astana.local", "password": "salah"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_credentials"


def test_login_and_me(client, login_operator):
    assert login_operator().status_code == 200
    me = client.get("/auth/me").get_json()
    assert me["role"] == "operator"


def test_grave_listing_and_page_bounds(client, login_admin):
    login_admin()
    data = client.get("/api/graves").get_json()
    assert data["total_count"] == 3
    assert data["total_pages"] == 1
    assert {item["deceased_name"] for item in data["items"]} == {
        "Ahmad Sulaiman",
        "Siti Aminah",
        "Budi Santoso",
    }

    assert client.get("/api/graves?page=2").status_code == 400
    assert client.get("/api/graves?page=0").status_code == 400
    bad = client.get("/api/graves?page=abc")
    assert bad.status_code == 400
    assert bad.get_json()["error"] == "validation_error"


def test_create_grave_and_duplicate_number(client, login_admin, block_a):
    login_admin()
    payload = {
        "grave": {
            "deceased_name": "Hasan Basri",
            "block_id": block_a.id,
            "number": "10",
            "date_of_death": "2023-06-01",
        },
        "heirs": [{"full_name": "Yusuf Basri", "phone_number": "0812", "relationship": "anak"}],
    }
    created = client.post("/api/graves", json=payload)
    assert created.status_code == 201
    body = created.get_json()
    assert body["grave"]["block_code"] == "A"
    assert body["heirs"][0]["is_primary"] is True

    duplicate = client.post("/api/graves", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "duplicate_grave_number"


def test_grave_detail_and_missing_grave(client, login_admin, ahmad):
    login_admin()
    detail = client.get(f"/api/graves/{ahmad.id}").get_json()
    assert detail["grave"]["number"] == "01"
    assert [h["full_name"] for h in detail["heirs"]] == ["Rahmat Sulaiman", "Nur Aisyah"]

    missing = client.get("/api/graves/9999")
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "not_found"


def test_replace_heirs(client, login_admin, ahmad):
    login_admin()
    response = client.put(f"/api/graves/{ahmad.id}/heirs", json={"heirs": [{"full_name": "Nur Aisyah"}]})
    assert response.status_code == 200
    assert [h["full_name"] for h in response.get_json()["items"]] == ["Nur Aisyah"]

    too_many = [{"full_name": f"Waris {i}"} for i in range(4)]
    assert client.put(f"/api/graves/{ahmad.id}/heirs", json={"heirs": too_many}).status_code == 400


def test_year_status_and_summary(client, login_admin, ahmad):
    login_admin()
    status = client.get(f"/api/graves/{ahmad.id}/years/2024").get_json()
    assert status == {
        "year": 2024,
        "is_paid": False,
        "amount": 200000,
        "payment_id": None,
        "status_label": "Belum Bayar",
    }

    summary = client.get(f"/api/graves/{ahmad.id}/summary?start_year=2022&end_year=2024").get_json()
    assert summary["years_paid"] == 2
    assert summary["total_paid"] == 350000
    assert summary["arrears"] == 200000
    assert [row["year"] for row in summary["per_year"]] == [2022, 2023, 2024]


def test_record_payment_errors_map_to_status_codes(client, login_operator, ahmad):
    login_operator()
    ok = client.post(
        "/api/payments",
        json={"grave_id": ahmad.id, "year": 2024, "payment_date": "2024-03-01", "amount": 200000},
    )
    assert ok.status_code == 201
    assert ok.get_json()["payment_method"] == "cash"

    duplicate = client.post(
        "/api/payments",
        json={"grave_id": ahmad.id, "year": 2024, "payment_date": "2024-04-01", "amount": 200000},
    )
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "duplicate_year"

    invalid = client.post(
        "/api/payments",
        json={"grave_id": ahmad.id, "year": 2025, "payment_date": "2025-01-01", "amount": 0},
    )
    assert invalid.status_code == 400

    missing = client.post(
        "/api/payments",
        json={"grave_id": 9999, "year": 2025, "payment_date": "2025-01-01", "amount": 100000},
    )
    assert missing.status_code == 404
    assert Payment.query.filter_by(grave_id=ahmad.id).count() == 3


def test_payment_lookup_and_delete(client, login_admin, ahmad):
    login_admin()
    found = client.get(f"/api/payments/lookup?grave_id={ahmad.id}&year=2022").get_json()
    assert found["payment"]["amount"] == 150000
    empty = client.get(f"/api/payments/lookup?grave_id={ahmad.id}&year=2030").get_json()
    assert empty["payment"] is None
    assert client.get("/api/payments/lookup?year=2022").status_code == 400

    payment_id = found["payment"]["id"]
    assert client.delete(f"/api/payments/{payment_id}").status_code == 200
    assert client.delete(f"/api/payments/{payment_id}").status_code == 404
    status = client.get(f"/api/graves/{ahmad.id}/years/2022").get_json()
    assert status["is_paid"] is False


def test_payment_method_labels_follow_language(client, login_admin, ahmad):
    login_admin()
    items = client.get(f"/api/graves/{ahmad.id}/payments").get_json()["items"]
    assert [(p["year"], p["payment_method_label"]) for p in items] == [(2023, "Transfer Bank"), (2022, "Tunai")]

    client.post("/auth/lang", json={"lang": "en"})
    items = client.get(f"/api/graves/{ahmad.id}/payments").get_json()["items"]
    assert items[1]["payment_method_label"] == "Cash"


def test_payment_summary_endpoint(client, login_admin):
    login_admin()
    data = client.get("/api/payments/summary?year=2024").get_json()
    assert data["year"] == 2024
    assert data["total_count"] == 3
    for item in data["items"]:
        assert [p["year"] for p in item["recent_payments"]] == [2020, 2021, 2022, 2023, 2024]
    assert client.get("/api/payments/summary?year=2024&page=5").status_code == 400


def test_export_endpoint_returns_workbook(client, login_admin):
    login_admin()
    response = client.get("/api/payments/export?start_year=2023&end_year=2024")
    assert response.status_code == 200
    assert response.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "Data_Pembayaran_" in response.headers["Content-Disposition"]
    ws = load_workbook(BytesIO(response.data)).active
    assert ws["F2"].value == "Lunas (Rp 200.000)"
    assert ws["G2"].value == "Belum Bayar"

    empty = client.get("/api/payments/export?search=tidak-ada")
    assert empty.status_code == 400
    inverted = client.get("/api/payments/export?start_year=2025&end_year=2024")
    assert inverted.status_code == 400


def test_block_writes_are_admin_only(client, login_operator):
    login_operator()
    response = client.post("/api/blocks", json={"code": "D", "total_capacity": 10, "annual_fee": 50000})
    assert response.status_code == 403
    assert client.patch("/api/settings", json={"active_year": 2025}).status_code == 403
    assert client.get("/api/blocks").status_code == 200


def test_block_lifecycle(client, login_admin, block_a):
    login_admin()
    created = client.post("/api/blocks", json={"code": "D", "total_capacity": 10, "annual_fee": 50000})
    assert created.status_code == 201
    block_id = created.get_json()["id"]

    duplicate = client.post("/api/blocks", json={"code": "D", "total_capacity": 10, "annual_fee": 50000})
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "duplicate_block_code"

    updated = client.patch(f"/api/blocks/{block_id}", json={"annual_fee": 75000, "status": "inactive"})
    assert updated.get_json()["annual_fee"] == 75000
    assert updated.get_json()["status"] == "inactive"

    stats = client.get(f"/api/blocks/{block_a.id}/stats").get_json()
    assert stats == {"total_capacity": 50, "occupied": 2, "available": 48}

    refused = client.delete(f"/api/blocks/{block_a.id}")
    assert refused.status_code == 409
    assert refused.get_json()["error"] == "referential_integrity"

    assert client.delete(f"/api/blocks/{block_id}").status_code == 200
    assert Block.query.filter_by(code="D").first() is None


def test_settings_and_stats(client, login_admin):
    login_admin()
    assert client.get("/api/settings").get_json()["active_year"] == 2024
    patched = client.patch("/api/settings", json={"active_year": 2025})
    assert patched.get_json()["active_year"] == 2025
    assert client.get("/api/stats").get_json() == {"blocks": 3, "graves": 3, "heirs": 4, "payments": 3}


def test_oversized_integers_are_rejected(client, login_admin, ahmad):
    login_admin()
    huge = 10**30
    for payload in (
        {"grave_id": ahmad.id, "year": 2025, "payment_date": "2025-01-01", "amount": huge},
        {"grave_id": ahmad.id, "year": huge, "payment_date": "2025-01-01", "amount": 100000},
    ):
        response = client.post("/api/payments", json=payload)
        assert response.status_code == 400
        assert response.get_json()["error"] == "validation_error"

    assert client.get(f"/api/graves/{huge}").status_code == 404
    assert client.get(f"/api/graves/{ahmad.id}/years/{huge}").status_code == 400
    assert client.delete(f"/api/payments/{huge}").status_code == 404
    assert Payment.query.filter_by(grave_id=ahmad.id).count() == 2
