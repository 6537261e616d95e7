"""
app/__init__.py

Flask application factory for the flooring installation CRM / ERP.

Requirements:
- PostgreSQL-ready (SQLAlchemy + migrations) with SQLite for development.
- UI is never trusted; server-side access control is enforced in routes.

Navigation:
- Sidebar sections:
  1) CRM (montages, trash)
  2) Rozliczenia (settlements, advances)
  3) ERP (products, suppliers, dictionaries, attributes)
  4) Dokumenty
  5) Zespół (admin only)
Items are filtered for visibility, BUT all permissions are enforced server-side.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, redirect, render_template, url_for
from flask_login import current_user

from .extensions import csrf, db, login_manager, migrate
from .logging_config import setup_logging
from .models import ADVANCE_STATUS_LABELS, DOCUMENT_TYPE_LABELS, QUOTE_STATUS_LABELS, USER_ROLE_LABELS, User
from .settlement import LINE_KIND_LABELS, METHOD_LABELS, PATTERN_LABELS, SETTLEMENT_STATUS_LABELS
from .utils import format_date, format_money
from .workflow import (
    INSTALLER_STATUS_LABELS,
    MATERIAL_STATUS_LABELS,
    MONTAGE_STATUS_LABELS,
    SAMPLE_STATUS_LABELS,
)

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# NAVIGATION STRUCTURE (UI visibility only; security enforced in routes)
# -------------------------------------------------------------------
# roles: None => every logged-in user; otherwise any of the listed roles (admin always sees all).
NAV_SECTIONS = [
    {
        "key": "crm",
        "label": "CRM",
        "items": [
            {"label": "Montaże", "endpoint": "montages.list_montages", "roles": None},
            {"label": "Nowy lead", "endpoint": "montages.create_lead", "roles": ("office",)},
            {"label": "Kosz", "endpoint": "montages.trash", "roles": ("admin",)},
        ],
    },
    {
        "key": "settlements",
        "label": "Rozliczenia",
        "items": [
            {"label": "Rozliczenia montaży", "endpoint": "settlements.list_settlements", "roles": ("office", "installer")},
            {"label": "Zaliczki", "endpoint": "settlements.list_advances", "roles": ("installer",)},
        ],
    },
    {
        "key": "erp",
        "label": "ERP",
        "items": [
            {"label": "Produkty", "endpoint": "erp.products_list", "roles": ("office",)},
            {"label": "Dostawcy", "endpoint": "erp.suppliers_list", "roles": ("office",)},
            {"label": "Kategorie", "endpoint": "erp.dictionary_categories", "roles": ("office",)},
            {"label": "Marki", "endpoint": "erp.dictionary_brands", "roles": ("office",)},
            {"label": "Kolekcje", "endpoint": "erp.dictionary_collections", "roles": ("office",)},
            {"label": "Atrybuty", "endpoint": "erp.attributes_list", "roles": ("office",)},
        ],
    },
    {
        "key": "documents",
        "label": "Dokumenty",
        "items": [
            {"label": "Archiwum dokumentów", "endpoint": "documents.list_documents", "roles": ("office",)},
        ],
    },
    {
        "key": "team",
        "label": "Zespół",
        "items": [
            {"label": "Użytkownicy i stawki", "endpoint": "team.list_users", "roles": ("admin",)},
        ],
    },
]


def _nav_item_visible(item: dict) -> bool:
    roles = item.get("roles")
    if roles is None:
        return True
    if current_user.is_admin:
        return True
    return any(current_user.has_role(role) for role in roles if role != "admin")


def _register_template_helpers(app: Flask) -> None:
    currency = app.config.get("SETTLEMENT_CURRENCY", "PLN")

    @app.template_filter("money")
    def money_filter(value, code=None):
        return format_money(value, code or currency)

    @app.template_filter("date")
    def date_filter(value):
        return format_date(value)

    @app.template_filter("datetime")
    def datetime_filter(value):
        return format_date(value, with_time=True)

    label_maps = {
        "montage_status": MONTAGE_STATUS_LABELS,
        "material_status": MATERIAL_STATUS_LABELS,
        "installer_status": INSTALLER_STATUS_LABELS,
        "sample_status": SAMPLE_STATUS_LABELS,
        "settlement_status": SETTLEMENT_STATUS_LABELS,
        "advance_status": ADVANCE_STATUS_LABELS,
        "line_kind": LINE_KIND_LABELS,
        "method": METHOD_LABELS,
        "pattern": PATTERN_LABELS,
        "quote_status": QUOTE_STATUS_LABELS,
        "document_type": DOCUMENT_TYPE_LABELS,
        "role": USER_ROLE_LABELS,
    }

    @app.template_filter("label")
    def label_filter(value, kind: str):
        return label_maps.get(kind, {}).get(value, value or "—")


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def forbidden(_error):
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found(_error):
        return render_template("errors/404.html"), 404


def _register_cli(app: Flask) -> None:
    @app.cli.command("seed-dictionaries")
    def seed_dictionaries_command():
        """Seed default categories, brands and technical attributes."""
        from .seed import seed_dictionaries

        created = seed_dictionaries()
        click.echo(
            "Słowniki uzupełnione: "
            + ", ".join(f"{name}={count}" for name, count in created.items())
        )

    @app.cli.command("create-admin")
    @click.argument("username")
    @click.argument("password")
    def create_admin_command(username: str, password: str):
        """Create an administrator account (or grant admin to an existing one)."""
        user = User.query.filter_by(username=username).first()
        if user is None:
            user = User(username=username, roles=["admin"], is_active=True)
            db.session.add(user)
        elif not user.is_admin:
            user.roles = sorted(set(user.roles or []) | {"admin"})
        user.set_password(password)
        db.session.commit()
        logger.info("Admin account %s ready", username)
        click.echo(f"Administrator {username} gotowy.")


def create_app(config_object=None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    if config_object is None:
        from config import get_config

        config_object = get_config()
    app.config.from_object(config_object)

    setup_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.documents import documents_bp
    from .blueprints.erp import erp_bp
    from .blueprints.montages import montages_bp
    from .blueprints.settlements import settlements_bp
    from .blueprints.team import team_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(montages_bp)
    app.register_blueprint(settlements_bp)
    app.register_blueprint(erp_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(team_bp)

    _register_template_helpers(app)
    _register_error_handlers(app)
    _register_cli(app)

    # ----------------------------------------------------------------------
    # Context globals (navigation)
    # ----------------------------------------------------------------------
    @app.context_processor
    def inject_globals():
        """
        Inject navigation filtered by user.

        SECURITY NOTE:
        - This only filters visibility. Routes enforce permissions.
        """
        visible_sections = []
        if current_user.is_authenticated:
            for section in NAV_SECTIONS:
                items = [item for item in section["items"] if _nav_item_visible(item)]
                if items:
                    visible_sections.append({"key": section["key"], "label": section["label"], "items": items})
        return {"config": app.config, "nav_sections": visible_sections}

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Home: redirect to montage list or login."""
        if current_user.is_authenticated:
            return redirect(url_for("montages.list_montages"))
        return redirect(url_for("auth.login"))

    logger.info("Application created (%s)", getattr(config_object, "__name__", config_object))
    return app
