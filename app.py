# app.py - AgroForms Collect
# Flask app: form submission, admin listing/detail, exports, dashboard, demo seeding.

from __future__ import annotations

import logging
import os
import secrets
from datetime import datetime
from typing import Any, Dict

import click
from flask import Flask, jsonify, render_template_string, request, send_file
from werkzeug.datastructures import MultiDict

import config
import exports as exp
import records as rec
from catalogs import CATALOG_VERSION, describe, normalize_locale
from db import init_db
from forms import FormValidationError
from queries import Filters, sort_from_args


APP_NAME = config.APP_NAME
APP_VERSION = config.APP_VERSION
EXPORT_DIR = config.EXPORT_DIR
APP_ENV = config.APP_ENV
SECRET_KEY = config.SECRET_KEY or secrets.token_urlsafe(32)

# If AGROFORMS_ADMIN_KEY is set, listing/export routes require ?key=<that value>
ADMIN_KEY = config.ADMIN_KEY

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = SECRET_KEY
app.json.ensure_ascii = False

# (form route prefix, form type name)
FORM_ROUTES = (("first-forms", "first"), ("second-forms", "second"))

EXPORT_FORMATS = {
    # fmt: (extension, mimetype, writer, density)
    "excel": ("xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", exp.export_forms_xlsx, "full"),
    "pdf": ("pdf", "application/pdf", exp.export_forms_pdf, "condensed"),
    "csv": ("csv", "text/csv", exp.export_forms_csv, "full"),
    "json": ("json", "application/json", exp.export_forms_json, "full"),
}


# ---------------------------
# Access
# ---------------------------

def require_admin() -> bool:
    if not ADMIN_KEY:
        return True
    key = request.args.get("key", "")
    return key == ADMIN_KEY


def admin_gate():
    if require_admin():
        return None
    return ("Forbidden: append ?key=YOUR_KEY to the URL.", 403)


# ---------------------------
# Request helpers
# ---------------------------

MULTI_FIELDS = ("irrigation_sources",)


def request_payload() -> Dict[str, Any]:
    """JSON body, or a form post (checkbox groups arrive as repeated keys)."""
    if request.is_json:
        body = request.get_json(silent=True)
        return dict(body) if isinstance(body, dict) else {}
    form: MultiDict = request.form
    data: Dict[str, Any] = {k: form.get(k) for k in form.keys()}
    for key in MULTI_FIELDS:
        values = form.getlist(key) or form.getlist(f"{key}[]")
        if len(values) > 1 or (values and str(values[0]).strip()[:1] not in ("[", "") and "," not in values[0]):
            data[key] = values
    return data


def export_locale(form_name: str, fmt: str) -> str:
    default = "tg" if form_name == "first" and fmt == "excel" else "ru"
    return normalize_locale(request.args.get("lang"), default)


def _export_filename(form_name: str, ext: str) -> str:
    return f"{form_name}_forms_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{ext}"


# ---------------------------
# Views
# ---------------------------

LANDING_HTML = """
<!doctype html>
<html lang="ru">
<head><meta charset="utf-8"><title>{{ app_name }}</title></head>
<body>
  <h2>{{ app_name }}</h2>
  <p>Версия {{ app_version }} · справочники {{ catalog_version }} · {{ env_label }}</p>
  <ul>
    <li><a href="/first-forms">Анкеты (Работницы)</a>:
      <a href="/first-forms/export/excel">Excel</a> ·
      <a href="/first-forms/export/pdf">PDF</a> ·
      <a href="/first-forms/export/csv">CSV</a></li>
    <li><a href="/second-forms">Анкеты (Дехканские хозяйства)</a>:
      <a href="/second-forms/export/excel">Excel</a> ·
      <a href="/second-forms/export/pdf">PDF</a> ·
      <a href="/second-forms/export/csv">CSV</a></li>
    <li><a href="/dashboard">Сводка</a></li>
  </ul>
</body>
</html>
"""


@app.route("/")
def landing():
    env_label = "LIVE" if APP_ENV in ("production", "live") else ("PILOT" if APP_ENV == "pilot" else "DEVELOPMENT")
    return render_template_string(
        LANDING_HTML,
        app_name=APP_NAME,
        app_version=APP_VERSION,
        catalog_version=CATALOG_VERSION,
        env_label=env_label,
    )


@app.route("/catalogs")
def catalogs_view():
    return jsonify(describe())


def submit_view(form_name: str):
    form_type = rec.get_form_type(form_name)
    data = request_payload()
    created_by = data.pop("created_by", None) or request.headers.get("X-Operator")
    try:
        new_id = rec.submit_form(form_type, data, created_by=created_by)
    except FormValidationError as e:
        logger.info("Rejected %s form: %s", form_name, ", ".join(sorted(e.errors)))
        return jsonify({"errors": e.errors}), 422
    return jsonify({"id": new_id, "message": "Анкета успешно сохранена!"}), 201


def list_view(form_name: str):
    gate = admin_gate()
    if gate:
        return gate
    form_type = rec.get_form_type(form_name)
    filters = Filters.from_args(request.args, form_type.query)
    sort = form_type.query.resolve_sort(sort_from_args(request.args))
    rows, paginator = rec.list_forms(
        form_type,
        filters,
        sort,
        page=request.args.get("page", 1),
        per_page=request.args.get("per_page"),
    )
    return jsonify(
        {
            "data": rows,
            "paginator": paginator,
            "filters": {**filters.to_dict(), "sort": sort.field, "order": sort.direction},
            "available": rec.available_values(form_type),
        }
    )


def detail_view(form_name: str, record_id: int):
    gate = admin_gate()
    if gate:
        return gate
    row = rec.get_form(rec.get_form_type(form_name), record_id)
    if not row:
        return jsonify({"error": "not found"}), 404
    return jsonify(row)


def export_view(form_name: str, fmt: str):
    gate = admin_gate()
    if gate:
        return gate
    if fmt not in EXPORT_FORMATS:
        return jsonify({"error": "not found"}), 404
    ext, mimetype, writer, density = EXPORT_FORMATS[fmt]
    form_type = rec.get_form_type(form_name)
    filters = Filters.from_args(request.args, form_type.query)
    sort = sort_from_args(request.args)
    locale = export_locale(form_name, fmt)

    os.makedirs(EXPORT_DIR, exist_ok=True)
    filename = _export_filename(form_name, ext)
    path = os.path.join(EXPORT_DIR, filename)
    try:
        writer(path, form_name, filters=filters, sort=sort, locale=locale, density=density)
    except Exception:
        logger.exception("Export %s/%s failed", form_name, fmt)
        return jsonify({"error": "export failed"}), 500
    return send_file(
        path,
        mimetype=mimetype,
        as_attachment=True,
        download_name=filename,
    )


for _prefix, _name in FORM_ROUTES:
    app.add_url_rule(
        f"/{_prefix}", f"{_name}_submit", submit_view, methods=["POST"], defaults={"form_name": _name}
    )
    app.add_url_rule(
        f"/{_prefix}", f"{_name}_list", list_view, methods=["GET"], defaults={"form_name": _name}
    )
    app.add_url_rule(
        f"/{_prefix}/<int:record_id>", f"{_name}_detail", detail_view, methods=["GET"], defaults={"form_name": _name}
    )
    app.add_url_rule(
        f"/{_prefix}/export/<fmt>", f"{_name}_export", export_view, methods=["GET"], defaults={"form_name": _name}
    )


@app.route("/dashboard")
def dashboard():
    gate = admin_gate()
    if gate:
        return gate
    counts = {name: rec.count_forms(ft) for name, ft in rec.FORM_TYPES.items()}
    return jsonify(
        {
            "app": APP_NAME,
            "version": APP_VERSION,
            "catalog_version": CATALOG_VERSION,
            "counts": counts,
            "total": sum(counts.values()),
        }
    )


@app.errorhandler(404)
def not_found(_e):
    return jsonify({"error": "not found"}), 404


# ---------------------------
# CLI
# ---------------------------

@app.cli.command("init-db")
def init_db_command():
    """Create tables and indexes."""
    init_db()
    click.echo(f"Database ready: {config.DB_PATH}")


@app.cli.command("seed-demo")
@click.option("--count", default=20, show_default=True, help="Submissions per form.")
@click.option("--seed", default=None, type=int, help="Random seed for repeatable data.")
def seed_demo_command(count: int, seed):
    """Insert random demo submissions for both forms."""
    init_db()
    created = rec.seed_demo_data(count=count, seed=seed)
    click.echo(f"Created {created['first']} first forms and {created['second']} second forms.")


if __name__ == "__main__":
    init_db()
    os.makedirs(EXPORT_DIR, exist_ok=True)
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG)
