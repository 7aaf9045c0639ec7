"""
Settings tests.

Coverage:
- Branding falls back to defaults, is public to read and admin-only to write
- Logo uploads are re-encoded as PNG under branding/
- Printer settings validate paper width, print method and auto_print
- The seed command adds every setting row once
"""

import io

import pytest
from PIL import Image

from conftest import login
from poskasir.cli import seed_reference_data
from poskasir.models import ActivityLog, Setting

BRANDING = {
    "app_name": "Warung Kopi",
    "footer_text": "Terima kasih",
    "theme_color": "#1a2b3c",
    "theme_color_dark": "#fff",
}

PRINTER = {
    "connection": "socket://192.168.1.50:9100",
    "paper_width": "80mm",
    "auto_print": True,
    "print_method": "FE",
}


def _jpeg() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (120, 40), (10, 20, 30)).save(buf, format="JPEG")
    return buf.getvalue()


class TestBranding:

    def test_defaults_are_public(self, client, db_session):
        resp = client.get("/api/v1/settings/branding")
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {
            "app_name": "POS Kasir",
            "app_logo": "",
            "footer_text": "POS Kasir. All rights reserved.",
            "theme_color": "#000000",
            "theme_color_dark": "#ffffff",
        }

    def test_admin_updates_branding(self, client, db_session, admin_user):
        login(client, admin_user)
        resp = client.put("/api/v1/settings/branding", json=BRANDING)
        assert resp.status_code == 200, resp.get_json()
        data = resp.get_json()["data"]
        assert data["app_name"] == "Warung Kopi"
        assert data["theme_color_dark"] == "#fff"

        assert db_session.get(Setting, "app_name").value == "Warung Kopi"
        log = db_session.query(ActivityLog).filter_by(entity_type="SETTINGS").one()
        assert log.action_type == "UPDATE"
        assert log.entity_id == "branding"

    def test_blank_footer_keeps_stored_value(self, client, db_session, admin_user):
        login(client, admin_user)
        client.put("/api/v1/settings/branding", json=BRANDING)
        resp = client.put("/api/v1/settings/branding", json={**BRANDING, "app_name": "Kopi Kenangan", "footer_text": ""})
        data = resp.get_json()["data"]
        assert data["app_name"] == "Kopi Kenangan"
        assert data["footer_text"] == "Terima kasih"

    @pytest.mark.parametrize("patch", [
        {"app_name": "ab"},
        {"theme_color": "blue"},
        {"theme_color_dark": "#12345g"},
        {"footer_text": "x" * 201},
    ])
    def test_invalid_branding(self, client, db_session, admin_user, patch):
        login(client, admin_user)
        resp = client.put("/api/v1/settings/branding", json={**BRANDING, **patch})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_error"
        assert db_session.query(Setting).count() == 0

    def test_manager_cannot_update(self, client, db_session, manager_user):
        login(client, manager_user)
        assert client.put("/api/v1/settings/branding", json=BRANDING).status_code == 403


class TestLogo:

    def test_logo_is_stored_as_png(self, client, db_session, storage, admin_user):
        login(client, admin_user)
        resp = client.post(
            "/api/v1/settings/branding/logo",
            data={"logo": (io.BytesIO(_jpeg()), "logo.jpg")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200, resp.get_json()
        ((key, _, content_type),) = storage.uploads
        assert key.startswith("branding/logo_") and key.endswith(".png")
        assert content_type == "image/png"
        assert storage.objects[key][:8] == b"\x89PNG\r\n\x1a\n"
        assert resp.get_json()["data"] == {"url": f"https://cdn.test/{key}"}

        assert db_session.get(Setting, "app_logo").value == key
        branding = client.get("/api/v1/settings/branding").get_json()["data"]
        assert branding["app_logo"] == f"https://cdn.test/{key}"

    def test_not_an_image_rejected(self, client, db_session, storage, admin_user):
        login(client, admin_user)
        resp = client.post(
            "/api/v1/settings/branding/logo",
            data={"logo": (io.BytesIO(b"plain text"), "logo.txt")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert storage.uploads == []

    def test_missing_file(self, client, db_session, admin_user):
        login(client, admin_user)
        resp = client.post("/api/v1/settings/branding/logo", data={}, content_type="multipart/form-data")
        assert resp.status_code == 400

    def test_storage_not_configured(self, client, app, db_session, admin_user):
        app.extensions["storage"] = None
        login(client, admin_user)
        resp = client.post(
            "/api/v1/settings/branding/logo",
            data={"logo": (io.BytesIO(_jpeg()), "logo.jpg")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 502
        assert db_session.get(Setting, "app_logo") is None

    def test_external_logo_url_is_returned_as_is(self, client, db_session, admin_user):
        login(client, admin_user)
        client.put("/api/v1/settings/branding", json={**BRANDING, "app_logo": "https://example.com/logo.png"})
        branding = client.get("/api/v1/settings/branding").get_json()["data"]
        assert branding["app_logo"] == "https://example.com/logo.png"


class TestPrinterSettings:

    def test_defaults(self, client, db_session, cashier_user):
        login(client, cashier_user)
        resp = client.get("/api/v1/settings/printer")
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {
            "connection": "socket://127.0.0.1:9100",
            "paper_width": "58mm",
            "auto_print": False,
            "print_method": "BE",
        }

    def test_admin_updates_printer(self, client, db_session, admin_user):
        login(client, admin_user)
        resp = client.put("/api/v1/settings/printer", json=PRINTER)
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["data"] == PRINTER
        assert db_session.get(Setting, "printer_auto_print").value == "true"

    @pytest.mark.parametrize("patch", [
        {"paper_width": "76mm"},
        {"print_method": "USB"},
        {"auto_print": "yes"},
        {"connection": ""},
    ])
    def test_invalid_printer_settings(self, client, db_session, admin_user, patch):
        login(client, admin_user)
        resp = client.put("/api/v1/settings/printer", json={**PRINTER, **patch})
        assert resp.status_code == 400

    def test_requires_auth(self, client, db_session):
        assert client.get("/api/v1/settings/printer").status_code == 401

    def test_cashier_cannot_update(self, client, db_session, cashier_user):
        login(client, cashier_user)
        assert client.put("/api/v1/settings/printer", json=PRINTER).status_code == 403


class TestSeedSettings:

    def test_seed_adds_each_setting_once(self, db_session):
        first = seed_reference_data()
        second = seed_reference_data()
        assert first["settings"] == 9
        assert second["settings"] == 0
        assert db_session.get(Setting, "printer_paper_width").value == "58mm"
