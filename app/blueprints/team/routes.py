"""
Team management (Admin Only).

Rules enforced:
- Every user has at least one role (admin / office / installer / measurer).
- An admin cannot lock themselves out (remove own admin role or deactivate own account).
- Installer rates feed the settlement calculator; rates must be non-negative.

Audit:
- CREATE / UPDATE logged (password hashes are never snapshotted).
"""

from flask import (
    Blueprint,
    render_template,
    request,
    redirect,
    url_for,
    flash,
)
from flask_login import current_user, login_required

from ...extensions import db
from ...models import USER_ROLES, User
from ...security import admin_required
from ...audit import log_action, serialize_model
from ...settlement import RATE_KEYS
from ...utils import form_flag, form_str, parse_decimal


team_bp = Blueprint(
    "team",
    __name__,
    url_prefix="/team",
)

RATE_LABELS = {
    "classic_click": "Podłoga klasyczna – click (zł/m²)",
    "classic_glue": "Podłoga klasyczna – klej (zł/m²)",
    "herringbone_click": "Jodełka – click (zł/m²)",
    "herringbone_glue": "Jodełka – klej (zł/m²)",
    "skirting": "Listwy (zł/mb)",
}


def _selected_roles() -> list:
    return [role for role in USER_ROLES if role in request.form.getlist("roles")]


def _read_rates(user: User) -> str | None:
    """Copy rate_<key> fields onto the user. Returns an error message or None."""
    parsed = {}
    for key in RATE_KEYS:
        raw = request.form.get(f"rate_{key}")
        value = parse_decimal(raw)
        if raw and raw.strip() and value is None:
            return f"Nieprawidłowa stawka: {RATE_LABELS[key]}."
        if value is not None and value < 0:
            return "Stawki nie mogą być ujemne."
        parsed[key] = value
    for key, value in parsed.items():
        setattr(user, f"rate_{key}", value)
    return None


# ---------------------------------------------------------------------
# LIST USERS
# ---------------------------------------------------------------------

@team_bp.route("/")
@login_required
@admin_required
def list_users():
    """Admin view: list all users with roles and rates."""
    users = User.query.order_by(User.username.asc()).all()

    return render_template(
        "team/list.html",
        users=users,
    )


# ---------------------------------------------------------------------
# CREATE USER
# ---------------------------------------------------------------------

@team_bp.route("/new", methods=["GET", "POST"])
@login_required
@admin_required
def create_user():
    """
    Create a new system user.

    Required:
    - username (unique)
    - password
    - at least one role
    """
    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        password = (request.form.get("password") or "").strip()
        roles = _selected_roles()

        if not username or not password:
            flash("Nazwa użytkownika i hasło są wymagane.", "danger")
            return redirect(url_for("team.create_user"))

        if User.query.filter_by(username=username).first():
            flash("Taka nazwa użytkownika już istnieje.", "danger")
            return redirect(url_for("team.create_user"))

        if not roles:
            flash("Wybierz co najmniej jedną rolę.", "danger")
            return redirect(url_for("team.create_user"))

        user = User(
            username=username,
            name=form_str("name"),
            email=form_str("email"),
            phone=form_str("phone"),
            roles=roles,
            is_active=True,
        )
        user.set_password(password)

        error = _read_rates(user)
        if error:
            flash(error, "danger")
            return redirect(url_for("team.create_user"))

        db.session.add(user)
        db.session.flush()

        log_action(user, "CREATE", after=serialize_model(user))
        db.session.commit()

        flash("Użytkownik został utworzony.", "success")
        return redirect(url_for("team.list_users"))

    return render_template("team/form.html", user=None, roles=USER_ROLES, rate_labels=RATE_LABELS)


# ---------------------------------------------------------------------
# EDIT USER
# ---------------------------------------------------------------------

@team_bp.route("/<int:user_id>/edit", methods=["GET", "POST"])
@login_required
@admin_required
def edit_user(user_id):
    """
    Edit an existing user.

    Admin can:
    - change roles and contact data
    - activate/deactivate
    - reset password
    - set installer rates
    """
    user = User.query.get_or_404(user_id)

    if request.method == "POST":
        before_snapshot = serialize_model(user)
        roles = _selected_roles()
        is_active = form_flag("is_active")

        if not roles:
            flash("Wybierz co najmniej jedną rolę.", "danger")
            return redirect(url_for("team.edit_user", user_id=user.id))

        if user.id == current_user.id and ("admin" not in roles or not is_active):
            flash("Nie możesz odebrać sobie uprawnień administratora ani dezaktywować własnego konta.", "danger")
            return redirect(url_for("team.edit_user", user_id=user.id))

        error = _read_rates(user)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("team.edit_user", user_id=user.id))

        user.roles = roles
        user.is_active = is_active
        user.name = form_str("name")
        user.email = form_str("email")
        user.phone = form_str("phone")

        new_password = (request.form.get("password") or "").strip()
        if new_password:
            user.set_password(new_password)

        db.session.flush()
        log_action(
            user,
            "UPDATE",
            before=before_snapshot,
            after=serialize_model(user),
            message="Zmieniono hasło" if new_password else None,
        )
        db.session.commit()

        flash("Użytkownik został zaktualizowany.", "success")
        return redirect(url_for("team.list_users"))

    return render_template("team/form.html", user=user, roles=USER_ROLES, rate_labels=RATE_LABELS)
