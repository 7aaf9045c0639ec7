# Overview: Service-layer operations for shop settings: branding and the receipt printer.

"""
Settings are stored as key/value rows. Reads overlay the stored rows on
built-in defaults, so a missing row never breaks the branding or printer
screens. Writes upsert every provided key in one unit of work.
"""

from __future__ import annotations

import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Setting, User
from ..models.activity import ACTION_UPDATE, ENTITY_SETTINGS
from ..storage import get_storage
from .activity_service import log_activity
from .concurrency import run_in_transaction
from .image_service import normalize_logo, resolve_link

PAPER_WIDTHS = ("58mm", "80mm")
PRINT_METHOD_BACKEND = "BE"
PRINT_METHOD_FRONTEND = "FE"
PRINT_METHODS = (PRINT_METHOD_BACKEND, PRINT_METHOD_FRONTEND)

# Response field -> (setting key, default value, description)
BRANDING_FIELDS = {
    "app_name": ("app_name", "POS Kasir", "Name shown in the header and on receipts"),
    "app_logo": ("app_logo", "", "Logo storage key or external URL"),
    "footer_text": ("footer_text", "POS Kasir. All rights reserved.", "Footer line on screens and receipts"),
    "theme_color": ("theme_color", "#000000", "Primary color for the light theme"),
    "theme_color_dark": ("theme_color_dark", "#ffffff", "Primary color for the dark theme"),
}

PRINTER_FIELDS = {
    "connection": ("printer_connection", "socket://127.0.0.1:9100", "Receipt printer connection string"),
    "paper_width": ("printer_paper_width", "58mm", "Receipt paper width"),
    "auto_print": ("printer_auto_print", "false", "Print the receipt automatically after payment"),
    "print_method": ("printer_method", PRINT_METHOD_BACKEND, "BE prints from the server, FE from the browser"),
}


def _stored(fields: dict) -> dict[str, str]:
    keys = [key for key, _, _ in fields.values()]
    rows = db.session.query(Setting).filter(Setting.key.in_(keys)).all()
    return {row.key: row.value for row in rows}


def _read(fields: dict) -> dict[str, str]:
    stored = _stored(fields)
    return {name: stored.get(key, default) for name, (key, default, _) in fields.items()}


def _upsert(session, key: str, value: str, description: str | None = None) -> None:
    row = session.get(Setting, key)
    if row is None:
        session.add(Setting(key=key, value=value, description=description))
    else:
        row.value = value


def _write(fields: dict, values: dict[str, str]) -> None:
    def _apply(session):
        for name, value in values.items():
            key, _, description = fields[name]
            _upsert(session, key, value, description)

    try:
        run_in_transaction(_apply)
    except IntegrityError:
        raise ConflictError("Settings were changed concurrently, please retry")


def _logo_link(value: str) -> str:
    if not value:
        return ""
    if value.startswith(("http://", "https://")):
        return value
    return resolve_link(value) or ""


def get_branding() -> dict:
    branding = _read(BRANDING_FIELDS)
    branding["app_logo"] = _logo_link(branding["app_logo"])
    return branding


def update_branding(actor: User, values: dict) -> dict:
    """
    Save branding fields.

    Empty optional fields (app_logo, footer_text) keep their stored value;
    the logo itself is normally set through upload_logo.
    """
    changes = {name: value for name, value in values.items() if name in BRANDING_FIELDS and value != ""}
    _write(BRANDING_FIELDS, changes)
    log_activity(actor.id, ACTION_UPDATE, ENTITY_SETTINGS, "branding", changes)
    return get_branding()


def upload_logo(actor: User, data: bytes) -> dict:
    """Store the logo as branding/logo_{random}.png and point app_logo at it."""
    max_bytes = current_app.config["LOGO_MAX_BYTES"]
    if not data:
        raise ValidationError("logo file is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"Logo must be at most {max_bytes // (1024 * 1024)}MB")

    png = normalize_logo(data)
    key = f"branding/logo_{uuid.uuid4().hex}.png"
    url = get_storage().upload_file(key, png, "image/png")

    _write(BRANDING_FIELDS, {"app_logo": key})
    log_activity(actor.id, ACTION_UPDATE, ENTITY_SETTINGS, "branding", {"app_logo": key})
    return {"url": url}


def get_printer_settings() -> dict:
    printer = _read(PRINTER_FIELDS)
    printer["auto_print"] = printer["auto_print"] == "true"
    return printer


def update_printer_settings(actor: User, values: dict) -> dict:
    changes = {name: value for name, value in values.items() if name in PRINTER_FIELDS}
    stored = dict(changes)
    if "auto_print" in stored:
        stored["auto_print"] = "true" if stored["auto_print"] else "false"
    _write(PRINTER_FIELDS, stored)
    log_activity(actor.id, ACTION_UPDATE, ENTITY_SETTINGS, "printer", changes)
    return get_printer_settings()


def seed_default_settings() -> int:
    """Add missing setting rows with their defaults. Caller commits."""
    added = 0
    for fields in (BRANDING_FIELDS, PRINTER_FIELDS):
        for key, default, description in fields.values():
            if db.session.get(Setting, key) is None:
                db.session.add(Setting(key=key, value=default, description=description))
                added += 1
    return added
