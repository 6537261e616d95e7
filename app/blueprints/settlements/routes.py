"""
app/blueprints/settlements/routes.py

Installer settlement routes.

Includes:
- Settlement list (admin/office: all, installer: own)
- Calculator preview for a montage and create / refresh of the draft
- Line editing: additional services, materials, signed corrections
- Manual override of the floor amount (reason required)
- Status changes and payout with advance deductions (admin)
- Advances: installer requests, admin approves

Arithmetic lives in app/settlement.py; routes only parse input, check
permissions, call the model helpers and audit the result.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required

from ...audit import history_for, log_action, serialize_model
from ...extensions import db
from ...models import ADVANCE_STATUSES, Advance, Montage, Settlement, SettlementLine
from ...security import _forbidden, admin_required, roles_required
from ...settlement import (
    LINE_KINDS,
    LOCKED_STATUSES,
    MAX_AMOUNT,
    SETTLEMENT_STATUSES,
    SettlementError,
    calculate_settlement,
    money,
    payable_after_advances,
    validate_status,
)
from ...utils import form_str, parse_decimal, parse_optional_int

logger = logging.getLogger(__name__)

settlements_bp = Blueprint("settlements", __name__, url_prefix="/settlements")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _can_view(settlement: Settlement) -> bool:
    if current_user.is_admin or current_user.has_role("office"):
        return True
    return settlement.installer_id == current_user.id


def _detail_url(settlement: Settlement) -> str:
    return url_for("settlements.detail", settlement_id=settlement.id)


def _calculate_for(montage: Montage):
    """Run the calculator with the montage measurement and the assigned installer's rates."""
    if montage.installer is None:
        raise SettlementError("Montaż nie ma przypisanego montażysty.")
    return calculate_settlement(
        montage.floor_area,
        montage.skirting_length,
        montage.installation_method,
        montage.floor_pattern,
        montage.installer.rates,
    )


def _editable_or_forbidden(settlement: Settlement):
    """Returns a 403 response when the current user may not edit this settlement."""
    if not settlement.can_be_edited_by(current_user):
        return _forbidden()
    return None


def _audit(settlement: Settlement, before: dict, action: str, message: str) -> None:
    db.session.flush()
    log_action(settlement, action, before=before, after=serialize_model(settlement), message=message)
    db.session.commit()
    logger.info("Settlement #%s %s: %s (total %s)", settlement.id, action, message, settlement.total_amount)


def _paid_advances(installer_id) -> list:
    return (
        Advance.query.filter_by(installer_id=installer_id, status="paid")
        .order_by(Advance.request_date.asc())
        .all()
    )


# ---------------------------------------------------------------------
# LIST
# ---------------------------------------------------------------------
@settlements_bp.route("/")
@login_required
@roles_required("office", "installer")
def list_settlements():
    q = Settlement.query
    if not (current_user.is_admin or current_user.has_role("office")):
        q = q.filter(Settlement.installer_id == current_user.id)

    status = (request.args.get("status") or "").strip()
    if status in SETTLEMENT_STATUSES:
        q = q.filter(Settlement.status == status)

    settlements = q.order_by(Settlement.created_at.desc(), Settlement.id.desc()).all()
    return render_template(
        "settlements/list.html",
        settlements=settlements,
        statuses=SETTLEMENT_STATUSES,
        current_status=status,
    )


# ---------------------------------------------------------------------
# CALCULATE / CREATE / REFRESH
# ---------------------------------------------------------------------
@settlements_bp.route("/montage/<int:montage_id>/calculate")
@login_required
@admin_required
def calculate(montage_id: int):
    """Calculator preview for a montage (nothing is saved)."""
    montage = Montage.query.get_or_404(montage_id)
    try:
        calc = _calculate_for(montage)
    except SettlementError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("montages.detail", montage_id=montage.id, _anchor="settlement"))

    return render_template(
        "settlements/calculate.html",
        montage=montage,
        calc=calc,
        existing=montage.settlement,
    )


@settlements_bp.route("/montage/<int:montage_id>/create", methods=["POST"])
@login_required
@admin_required
def create_or_refresh(montage_id: int):
    """
    Persist the calculator result.

    - no settlement yet: create a draft (optionally with an override),
    - draft: refresh calculator-derived data, keep user edits,
    - anything else: refused.
    """
    montage = Montage.query.get_or_404(montage_id)
    note = form_str("note")

    try:
        calc = _calculate_for(montage)
        settlement = montage.settlement

        if settlement is not None:
            if settlement.status in LOCKED_STATUSES:
                raise SettlementError("Rozliczenie jest już zatwierdzone lub wypłacone.")
            before = serialize_model(settlement)
            settlement.refresh_draft(calc)
            if note is not None:
                settlement.note = note
            _audit(settlement, before, "UPDATE", f"Przeliczono rozliczenie na kwotę {settlement.total_amount} PLN")
            flash("Rozliczenie zostało przeliczone.", "success")
            return redirect(_detail_url(settlement))

        settlement = Settlement(montage=montage, installer_id=montage.installer_id, status="draft", note=note)
        settlement.apply_calculation(calc)
        if form_str("override_amount") or form_str("override_reason"):
            settlement.apply_override(request.form.get("override_amount"), request.form.get("override_reason"))
        db.session.add(settlement)
    except SettlementError as exc:
        db.session.rollback()
        logger.warning("Settlement for montage %s refused: %s", montage.id, exc)
        flash(str(exc), "danger")
        return redirect(url_for("montages.detail", montage_id=montage.id, _anchor="settlement"))

    db.session.flush()
    log_action(
        settlement,
        "CREATE",
        after=serialize_model(settlement),
        message=f"Utworzono rozliczenie dla montażu {montage.display_id} na kwotę {settlement.total_amount} PLN",
    )
    db.session.commit()
    logger.info("Settlement #%s created for montage %s", settlement.id, montage.display_id)

    for warning in calc.warnings:
        flash(warning, "warning")
    flash("Rozliczenie zostało utworzone.", "success")
    return redirect(_detail_url(settlement))


# ---------------------------------------------------------------------
# DETAIL
# ---------------------------------------------------------------------
@settlements_bp.route("/<int:settlement_id>")
@login_required
def detail(settlement_id: int):
    settlement = Settlement.query.get_or_404(settlement_id)
    if not _can_view(settlement):
        return _forbidden()

    can_edit = settlement.can_be_edited_by(current_user) and not settlement.is_read_only_for(current_user)
    return render_template(
        "settlements/detail.html",
        settlement=settlement,
        can_edit=can_edit,
        line_kinds=LINE_KINDS,
        statuses=SETTLEMENT_STATUSES,
        paid_advances=_paid_advances(settlement.installer_id) if current_user.is_admin else [],
        history=history_for(settlement),
    )


# ---------------------------------------------------------------------
# LINES / CORRECTIONS
# ---------------------------------------------------------------------
@settlements_bp.route("/<int:settlement_id>/lines", methods=["POST"])
@login_required
def add_line(settlement_id: int):
    """Additional service or material (quantity x rate)."""
    settlement = Settlement.query.get_or_404(settlement_id)
    denied = _editable_or_forbidden(settlement)
    if denied:
        return denied

    before = serialize_model(settlement)
    try:
        line = settlement.add_line(
            request.form.get("kind"),
            request.form.get("description"),
            request.form.get("quantity"),
            request.form.get("rate"),
        )
    except SettlementError as exc:
        db.session.rollback()
        flash(str(exc), "danger")
        return redirect(_detail_url(settlement))

    _audit(settlement, before, "UPDATE", f"Dodano pozycję: {line.description} ({line.amount} PLN)")
    flash("Pozycja została dodana.", "success")
    return redirect(_detail_url(settlement))


@settlements_bp.route("/<int:settlement_id>/corrections", methods=["POST"])
@login_required
def add_correction(settlement_id: int):
    """Signed free-form adjustment of the total."""
    settlement = Settlement.query.get_or_404(settlement_id)
    denied = _editable_or_forbidden(settlement)
    if denied:
        return denied

    before = serialize_model(settlement)
    try:
        line = settlement.add_correction(request.form.get("description"), request.form.get("amount"))
    except SettlementError as exc:
        db.session.rollback()
        flash(str(exc), "danger")
        return redirect(_detail_url(settlement))

    _audit(settlement, before, "UPDATE", f"Dodano korektę: {line.description} ({line.amount} PLN)")
    flash("Korekta została dodana.", "success")
    return redirect(_detail_url(settlement))


@settlements_bp.route("/<int:settlement_id>/lines/<int:line_id>/delete", methods=["POST"])
@login_required
def remove_line(settlement_id: int, line_id: int):
    settlement = Settlement.query.get_or_404(settlement_id)
    denied = _editable_or_forbidden(settlement)
    if denied:
        return denied

    line = SettlementLine.query.filter_by(id=line_id, settlement_id=settlement.id).first_or_404()
    if line.is_system:
        flash("Pozycji wyliczonej automatycznie nie można usunąć. Przelicz rozliczenie.", "warning")
        return redirect(_detail_url(settlement))

    before = serialize_model(settlement)
    description, amount = line.description, line.amount
    try:
        settlement.remove_line(line)
    except SettlementError as exc:
        flash(str(exc), "danger")
        return redirect(_detail_url(settlement))

    _audit(settlement, before, "UPDATE", f"Usunięto pozycję: {description} ({amount} PLN)")
    flash("Pozycja została usunięta.", "success")
    return redirect(_detail_url(settlement))


# ---------------------------------------------------------------------
# OVERRIDE / NOTE
# ---------------------------------------------------------------------
@settlements_bp.route("/<int:settlement_id>/override", methods=["POST"])
@login_required
def apply_override(settlement_id: int):
    """Replace the computed floor amount with a manual amount (reason required)."""
    settlement = Settlement.query.get_or_404(settlement_id)
    denied = _editable_or_forbidden(settlement)
    if denied:
        return denied

    before = serialize_model(settlement)
    try:
        settlement.apply_override(request.form.get("amount"), request.form.get("reason"))
    except SettlementError as exc:
        db.session.rollback()
        flash(str(exc), "danger")
        return redirect(_detail_url(settlement))

    _audit(
        settlement,
        before,
        "OVERRIDE",
        f"Nadpisano kwotę za podłogę: {settlement.floor_amount} → {settlement.override_amount} PLN "
        f"({settlement.override_reason})",
    )
    flash("Kwota została nadpisana.", "success")
    return redirect(_detail_url(settlement))


@settlements_bp.route("/<int:settlement_id>/override/clear", methods=["POST"])
@login_required
def clear_override(settlement_id: int):
    settlement = Settlement.query.get_or_404(settlement_id)
    denied = _editable_or_forbidden(settlement)
    if denied:
        return denied
    if not settlement.has_override:
        flash("Rozliczenie nie ma nadpisanej kwoty.", "info")
        return redirect(_detail_url(settlement))

    before = serialize_model(settlement)
    settlement.clear_override()
    _audit(settlement, before, "OVERRIDE", "Usunięto nadpisanie kwoty za podłogę")
    flash("Przywrócono wyliczoną kwotę.", "success")
    return redirect(_detail_url(settlement))


@settlements_bp.route("/<int:settlement_id>/note", methods=["POST"])
@login_required
def update_note(settlement_id: int):
    settlement = Settlement.query.get_or_404(settlement_id)
    denied = _editable_or_forbidden(settlement)
    if denied:
        return denied

    before = serialize_model(settlement)
    settlement.note = form_str("note")
    _audit(settlement, before, "UPDATE", "Zmieniono notatkę")
    flash("Notatka została zapisana.", "success")
    return redirect(_detail_url(settlement))


# ---------------------------------------------------------------------
# STATUS / PAYOUT (admin)
# ---------------------------------------------------------------------
@settlements_bp.route("/<int:settlement_id>/status", methods=["POST"])
@login_required
@admin_required
def update_status(settlement_id: int):
    settlement = Settlement.query.get_or_404(settlement_id)
    try:
        status = validate_status(request.form.get("status"))
    except SettlementError as exc:
        flash(str(exc), "danger")
        return redirect(_detail_url(settlement))

    before = serialize_model(settlement)
    previous = settlement.status
    settlement.status = status
    settlement.paid_at = datetime.utcnow() if status == "paid" else None
    _audit(settlement, before, "STATUS", f"Zmiana statusu rozliczenia: {previous} → {status}")
    flash("Status rozliczenia został zmieniony.", "success")
    return redirect(_detail_url(settlement))


@settlements_bp.route("/<int:settlement_id>/pay", methods=["POST"])
@login_required
@admin_required
def pay(settlement_id: int):
    """Mark as paid and deduct the selected (paid) advances of the same installer."""
    settlement = Settlement.query.get_or_404(settlement_id)
    if settlement.status == "paid":
        flash("Rozliczenie zostało już wypłacone.", "info")
        return redirect(_detail_url(settlement))

    advance_ids = {parse_optional_int(raw) for raw in request.form.getlist("advance_ids")}
    advance_ids.discard(None)
    available = {a.id: a for a in _paid_advances(settlement.installer_id)}
    if not advance_ids <= set(available):
        flash("Wybrano zaliczkę, której nie można potrącić.", "danger")
        return redirect(_detail_url(settlement))

    selected = [available[advance_id] for advance_id in sorted(advance_ids)]
    before = serialize_model(settlement)
    settlement.status = "paid"
    settlement.paid_at = datetime.utcnow()
    for advance in selected:
        advance.status = "deducted"
        advance.settlement_id = settlement.id

    payable = payable_after_advances(settlement.total_amount, [a.amount for a in selected])
    _audit(
        settlement,
        before,
        "PAY",
        f"Wypłacono rozliczenie. Potrącono zaliczek: {len(selected)}, do wypłaty {payable} PLN",
    )
    flash(f"Rozliczenie zostało wypłacone. Do wypłaty: {payable} PLN.", "success")
    return redirect(_detail_url(settlement))


# ---------------------------------------------------------------------
# ADVANCES
# ---------------------------------------------------------------------
@settlements_bp.route("/advances")
@login_required
@roles_required("installer")
def list_advances():
    q = Advance.query
    if not current_user.is_admin:
        q = q.filter(Advance.installer_id == current_user.id)

    status = (request.args.get("status") or "").strip()
    if status in ADVANCE_STATUSES:
        q = q.filter(Advance.status == status)

    advances = q.order_by(Advance.request_date.desc(), Advance.id.desc()).all()
    return render_template(
        "settlements/advances.html",
        advances=advances,
        statuses=ADVANCE_STATUSES,
        current_status=status,
    )


@settlements_bp.route("/advances/request", methods=["POST"])
@login_required
def request_advance():
    """Installer asks for a cash advance for themselves."""
    if not current_user.is_installer:
        return _forbidden()

    amount = parse_decimal(request.form.get("amount"))
    if amount is None or amount <= 0:
        flash("Kwota zaliczki musi być większa od zera.", "danger")
        return redirect(url_for("settlements.list_advances"))
    if amount > MAX_AMOUNT:
        flash("Kwota jest zbyt duża.", "danger")
        return redirect(url_for("settlements.list_advances"))

    advance = Advance(
        installer_id=current_user.id,
        amount=money(amount),
        description=form_str("description"),
        status="pending",
    )
    db.session.add(advance)
    db.session.flush()
    log_action(advance, "CREATE", after=serialize_model(advance), message=f"Wniosek o zaliczkę {advance.amount} PLN")
    db.session.commit()

    flash("Wniosek o zaliczkę został złożony.", "success")
    return redirect(url_for("settlements.list_advances"))


@settlements_bp.route("/advances/<int:advance_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve_advance(advance_id: int):
    advance = Advance.query.get_or_404(advance_id)
    if advance.status != "pending":
        flash("Można zatwierdzić tylko oczekującą zaliczkę.", "warning")
        return redirect(url_for("settlements.list_advances"))

    before = serialize_model(advance)
    advance.status = "paid"
    advance.paid_date = datetime.utcnow()
    db.session.flush()
    log_action(advance, "STATUS", before=before, after=serialize_model(advance), message="Zaliczka wypłacona")
    db.session.commit()

    flash("Zaliczka została zatwierdzona.", "success")
    return redirect(url_for("settlements.list_advances"))
