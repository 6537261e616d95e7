"""
Authentication Routes

Provides:
- /auth/login
- /auth/logout
- /auth/seed-admin (first system bootstrap)

Rules:
- Only active users may log in.
- The bootstrap form works only while the users table is empty.
"""

import logging

from flask import (
    Blueprint,
    render_template,
    redirect,
    url_for,
    flash,
    request,
)
from flask_login import (
    login_user,
    logout_user,
    login_required,
    current_user,
)

from ...extensions import db
from ...models import User
from ...utils import safe_next_url

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    """Authenticate a user with username and password."""
    if current_user.is_authenticated:
        return redirect(url_for("montages.list_montages"))

    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")

        user = User.query.filter_by(username=username).first()

        if not user or not user.check_password(password):
            logger.warning("Failed login for %r from %s", username, request.remote_addr)
            flash("Nieprawidłowa nazwa użytkownika lub hasło.", "danger")
            return render_template("auth/login.html"), 401

        if not user.is_active:
            flash("Konto jest nieaktywne.", "danger")
            return render_template("auth/login.html"), 403

        login_user(user)
        logger.info("User %s logged in", user.username)
        flash("Witaj!", "success")

        return redirect(safe_next_url(request.args.get("next"), "montages.list_montages"))

    return render_template("auth/login.html")


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["GET", "POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    flash("Wylogowano.", "info")
    return redirect(url_for("auth.login"))


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["GET", "POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    If ANY user already exists the form is blocked.
    """
    if User.query.count() > 0:
        flash("W systemie istnieje już użytkownik.", "warning")
        return redirect(url_for("auth.login"))

    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        name = request.form.get("name", "").strip()

        if not username or not password:
            flash("Podaj nazwę użytkownika i hasło.", "danger")
            return render_template("auth/seed_admin.html")

        user = User(username=username, name=name or None, roles=["admin"], is_active=True)
        user.set_password(password)

        db.session.add(user)
        db.session.commit()
        logger.info("Bootstrap admin %s created", username)

        flash("Administrator został utworzony. Zaloguj się.", "success")
        return redirect(url_for("auth.login"))

    return render_template("auth/seed_admin.html")
