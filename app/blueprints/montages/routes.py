"""
app/blueprints/montages/routes.py

CRM routes for montages (installation jobs).

Includes:
- List (table + pipeline view) with server-side filters
- Lead intake and lead conversion
- Detail page with tabs: data, workflow, notes, tasks, checklist,
  attachments, quotes, documents, settlement, history
- Workflow status changes gated by app/workflow.py
- Soft delete, trash and restore (admin)

IMPORTANT:
- UI is never trusted. Access control and validations are server-side.
- Installers / measurers only reach montages assigned to them
  (montage_access_required + _base_montages_query).
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ...audit import history_for, log_action, serialize_model
from ...extensions import db
from ...models import (
    ATTACHMENT_TYPES,
    DOCUMENT_TYPES,
    QUOTE_STATUSES,
    FinanceDocument,
    Montage,
    MontageAttachment,
    MontageChecklistItem,
    MontageNote,
    MontageTask,
    Product,
    Quote,
    User,
)
from ...security import admin_required, can_access_montage, montage_access_required, roles_required
from ...seed import add_default_checklist
from ...settlement import FLOOR_PATTERNS, INSTALLATION_METHODS
from ...utils import form_flag, form_str, normalize_digits, parse_datetime, parse_decimal, parse_optional_int
from ...workflow import (
    INSTALLER_STATUSES,
    MATERIAL_STATUSES,
    MONTAGE_STATUSES,
    SAMPLE_STATUSES,
    WorkflowError,
    available_actions,
    check_transition,
    progress,
    status_label,
)

logger = logging.getLogger(__name__)

montages_bp = Blueprint("montages", __name__, url_prefix="/montages")


# ---------------------------------------------------------------------
# Loaders & query helpers
# ---------------------------------------------------------------------
def _load_montage(montage_id: int, **_: object) -> Montage:
    """Loader for decorator factories (trashed montages are not reachable)."""
    montage = Montage.query.get_or_404(montage_id)
    if montage.is_deleted:
        abort(404)
    return montage


def _load_quote_montage(quote_id: int, **_: object) -> Montage:
    return Quote.query.get_or_404(quote_id).montage


def _base_montages_query():
    """Field workers see only montages assigned to them."""
    q = Montage.active()
    if current_user.is_field_worker:
        q = q.filter(or_(Montage.installer_id == current_user.id, Montage.measurer_id == current_user.id))
    return q


def _users_with_role(*roles: str) -> list:
    users = User.query.filter_by(is_active=True).order_by(User.name.asc(), User.username.asc()).all()
    return [u for u in users if any(u.has_role(r) for r in roles)]


def _active_products() -> list:
    return Product.query.filter_by(is_active=True).order_by(Product.name.asc()).all()


def _detail_url(montage: Montage, tab: str | None = None) -> str:
    return url_for("montages.detail", montage_id=montage.id, _anchor=tab)


def _form_values(montage: Montage) -> dict:
    """Column values for pre-filling the edit / convert forms."""
    values = {column.name: getattr(montage, column.name) for column in Montage.__table__.columns}
    values["measurement_date_input"] = (
        montage.measurement_date.strftime("%Y-%m-%d") if montage.measurement_date else ""
    )
    values["scheduled_installation_input"] = (
        montage.scheduled_installation_at.strftime("%Y-%m-%d") if montage.scheduled_installation_at else ""
    )
    return values


def _apply_list_filters(q):
    status = (request.args.get("status") or "").strip()
    if status in MONTAGE_STATUSES:
        q = q.filter(Montage.status == status)

    search = (request.args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Montage.client_name.ilike(like),
                func.coalesce(Montage.display_id, "").ilike(like),
                func.coalesce(Montage.installation_city, "").ilike(like),
                func.coalesce(Montage.contact_phone, "").ilike(like),
            )
        )

    installer_id = parse_optional_int(request.args.get("installer_id"))
    if installer_id and not current_user.is_field_worker:
        q = q.filter(Montage.installer_id == installer_id)
    return q


def _read_client_fields(montage: Montage) -> str | None:
    """Copy client/address fields from the form. Returns an error message or None."""
    client_name = form_str("client_name")
    if not client_name:
        return "Nazwa klienta jest wymagana."

    nip = normalize_digits(request.form.get("nip"))
    if nip and len(nip) != 10:
        return "NIP musi składać się z 10 cyfr."

    montage.client_name = client_name
    montage.contact_email = form_str("contact_email")
    montage.contact_phone = form_str("contact_phone")
    montage.is_company = form_flag("is_company")
    montage.company_name = form_str("company_name")
    montage.nip = nip or None
    montage.billing_address = form_str("billing_address")
    montage.billing_city = form_str("billing_city")
    montage.billing_postal_code = form_str("billing_postal_code")
    montage.installation_address = form_str("installation_address")
    montage.installation_city = form_str("installation_city")
    montage.installation_postal_code = form_str("installation_postal_code")
    montage.additional_info = form_str("additional_info")
    return None


def _read_measurement_fields(montage: Montage) -> str | None:
    """Copy measurement fields from the form. Returns an error message or None."""
    floor_area = parse_decimal(request.form.get("floor_area"))
    skirting_length = parse_decimal(request.form.get("skirting_length"))
    if request.form.get("floor_area") and floor_area is None:
        return "Nieprawidłowy metraż."
    if request.form.get("skirting_length") and skirting_length is None:
        return "Nieprawidłowa długość listew."
    if (floor_area is not None and floor_area < 0) or (skirting_length is not None and skirting_length < 0):
        return "Metraż i długość listew nie mogą być ujemne."

    method = form_str("installation_method")
    pattern = form_str("floor_pattern")
    if method and method not in INSTALLATION_METHODS:
        return "Nieprawidłowa metoda montażu."
    if pattern and pattern not in FLOOR_PATTERNS:
        return "Nieprawidłowy wzór ułożenia."

    product_ids = {p.id for p in _active_products()}
    panel_id = parse_optional_int(request.form.get("panel_product_id"))
    skirting_id = parse_optional_int(request.form.get("skirting_product_id"))
    for product_id in (panel_id, skirting_id):
        if product_id is not None and product_id not in product_ids:
            return "Wybrano nieprawidłowy produkt."

    montage.floor_area = floor_area
    montage.skirting_length = skirting_length
    montage.installation_method = method
    montage.floor_pattern = pattern
    montage.panel_product_id = panel_id
    montage.skirting_product_id = skirting_id
    montage.measurement_date = parse_datetime(request.form.get("measurement_date"))
    montage.scheduled_installation_at = parse_datetime(request.form.get("scheduled_installation_at"))
    return None


# ---------------------------------------------------------------------
# LIST
# ---------------------------------------------------------------------
@montages_bp.route("/")
@login_required
def list_montages():
    """Montage list; ?view=pipeline groups the result by workflow stage."""
    q = _apply_list_filters(_base_montages_query())
    montages = q.order_by(Montage.updated_at.desc(), Montage.id.desc()).all()

    view = "pipeline" if request.args.get("view") == "pipeline" else "table"
    pipeline = {status: [] for status in MONTAGE_STATUSES}
    for montage in montages:
        pipeline.setdefault(montage.status, []).append(montage)

    return render_template(
        "montages/list.html",
        montages=montages,
        pipeline=pipeline,
        view=view,
        statuses=MONTAGE_STATUSES,
        installers=_users_with_role("installer") if not current_user.is_field_worker else [],
        filters=request.args,
    )


# ---------------------------------------------------------------------
# LEADS
# ---------------------------------------------------------------------
@montages_bp.route("/leads/new", methods=["GET", "POST"])
@login_required
@roles_required("office")
def create_lead():
    """Register a new lead (status 'lead')."""
    if request.method == "POST":
        montage = Montage(status="lead")
        error = _read_client_fields(montage)
        if error:
            flash(error, "danger")
            return render_template("montages/lead_form.html", form=request.form), 400

        for _attempt in range(3):
            montage.display_id = Montage.next_display_id()
            db.session.add(montage)
            try:
                db.session.flush()
                break
            except IntegrityError:
                db.session.rollback()
        else:
            flash("Nie udało się nadać numeru montażu. Spróbuj ponownie.", "danger")
            return redirect(url_for("montages.create_lead"))

        log_action(montage, "CREATE", after=serialize_model(montage), message=f"Nowy lead {montage.display_id}")
        db.session.commit()
        logger.info("Lead %s created by %s", montage.display_id, current_user.username)

        flash(f"Lead {montage.display_id} został dodany.", "success")
        return redirect(_detail_url(montage))

    return render_template("montages/lead_form.html", form={})


@montages_bp.route("/<int:montage_id>/convert", methods=["GET", "POST"])
@login_required
@roles_required("office")
def convert_lead(montage_id: int):
    """Turn a lead into a montage: fill measurement data and move to 'before_measurement'."""
    montage = _load_montage(montage_id)
    if montage.status != "lead":
        flash("Tylko leady mogą być konwertowane.", "warning")
        return redirect(_detail_url(montage))

    if request.method == "POST":
        before = serialize_model(montage)
        error = _read_client_fields(montage) or _read_measurement_fields(montage)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("montages.convert_lead", montage_id=montage.id))

        try:
            montage.status = check_transition(montage, "before_measurement")
        except WorkflowError as exc:
            db.session.rollback()
            flash(str(exc), "danger")
            return redirect(_detail_url(montage))

        add_default_checklist(montage)
        db.session.flush()
        log_action(
            montage,
            "UPDATE",
            before=before,
            after=serialize_model(montage),
            message=f"Przekonwertowano lead {montage.display_id} na montaż",
        )
        db.session.commit()

        flash("Lead został przekonwertowany na montaż.", "success")
        return redirect(_detail_url(montage))

    return render_template(
        "montages/convert_form.html", montage=montage, values=_form_values(montage), products=_active_products()
    )


# ---------------------------------------------------------------------
# DETAIL / EDIT
# ---------------------------------------------------------------------
@montages_bp.route("/<int:montage_id>")
@login_required
@montage_access_required(_load_montage)
def detail(montage_id: int):
    montage = _load_montage(montage_id)
    return render_template(
        "montages/detail.html",
        montage=montage,
        actions=available_actions(montage),
        progress=progress(montage),
        history=history_for(montage),
        installers=_users_with_role("installer"),
        measurers=_users_with_role("measurer", "installer"),
        products=_active_products(),
        values=_form_values(montage),
        material_statuses=MATERIAL_STATUSES,
        installer_statuses=INSTALLER_STATUSES,
        sample_statuses=SAMPLE_STATUSES,
        attachment_types=ATTACHMENT_TYPES,
        quote_statuses=QUOTE_STATUSES,
        document_types=DOCUMENT_TYPES,
        statuses=MONTAGE_STATUSES,
        is_office=not current_user.is_field_worker,
    )


@montages_bp.route("/<int:montage_id>/edit", methods=["GET", "POST"])
@login_required
@roles_required("office")
def edit(montage_id: int):
    """Edit client, address and measurement data."""
    montage = _load_montage(montage_id)

    if request.method == "POST":
        before = serialize_model(montage)
        error = _read_client_fields(montage) or _read_measurement_fields(montage)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("montages.edit", montage_id=montage.id))

        db.session.flush()
        log_action(montage, "UPDATE", before=before, after=serialize_model(montage))
        db.session.commit()

        flash("Dane montażu zostały zapisane.", "success")
        return redirect(_detail_url(montage))

    return render_template(
        "montages/edit_form.html", montage=montage, values=_form_values(montage), products=_active_products()
    )


@montages_bp.route("/<int:montage_id>/measurement", methods=["POST"])
@login_required
@montage_access_required(_load_montage)
def update_measurement(montage_id: int):
    """Measurement data; also open to the assigned installer / measurer."""
    montage = _load_montage(montage_id)
    before = serialize_model(montage)

    error = _read_measurement_fields(montage)
    if error:
        db.session.rollback()
        flash(error, "danger")
        return redirect(_detail_url(montage, "data"))

    db.session.flush()
    log_action(montage, "UPDATE", before=before, after=serialize_model(montage), message="Zaktualizowano pomiar")
    db.session.commit()

    flash("Pomiar został zapisany.", "success")
    return redirect(_detail_url(montage, "data"))


# ---------------------------------------------------------------------
# WORKFLOW
# ---------------------------------------------------------------------
@montages_bp.route("/<int:montage_id>/status", methods=["POST"])
@login_required
@roles_required("office")
def update_status(montage_id: int):
    """Move the montage to another stage (forward gated by preconditions, backward always allowed)."""
    montage = _load_montage(montage_id)
    target = request.form.get("status")
    before = serialize_model(montage)
    previous = montage.status

    try:
        montage.status = check_transition(montage, target)
    except WorkflowError as exc:
        logger.warning("Status change of %s to %r refused: %s", montage.display_id, target, exc)
        flash(str(exc), "danger")
        return redirect(_detail_url(montage, "workflow"))

    if montage.status == previous:
        flash("Montaż jest już na tym etapie.", "info")
        return redirect(_detail_url(montage, "workflow"))

    db.session.flush()
    message = f"Zmiana statusu: {status_label(previous)} → {status_label(montage.status)}"
    log_action(montage, "STATUS", before=before, after=serialize_model(montage), message=message)
    db.session.commit()
    logger.info("Montage %s: %s -> %s", montage.display_id, previous, montage.status)

    flash(message, "success")
    return redirect(_detail_url(montage, "workflow"))


@montages_bp.route("/<int:montage_id>/realization", methods=["POST"])
@login_required
@roles_required("office")
def update_realization(montage_id: int):
    """Material / installer / sample statuses and team assignment."""
    montage = _load_montage(montage_id)
    before = serialize_model(montage)

    material_status = request.form.get("material_status") or montage.material_status
    installer_status = request.form.get("installer_status") or montage.installer_status
    sample_status = request.form.get("sample_status") or montage.sample_status
    if (
        material_status not in MATERIAL_STATUSES
        or installer_status not in INSTALLER_STATUSES
        or sample_status not in SAMPLE_STATUSES
    ):
        flash("Nieprawidłowy status realizacji.", "danger")
        return redirect(_detail_url(montage, "workflow"))

    installer_id = parse_optional_int(request.form.get("installer_id"))
    measurer_id = parse_optional_int(request.form.get("measurer_id"))
    if installer_id is not None and installer_id not in {u.id for u in _users_with_role("installer")}:
        flash("Wybrany użytkownik nie jest aktywnym montażystą.", "danger")
        return redirect(_detail_url(montage, "workflow"))
    if measurer_id is not None and measurer_id not in {u.id for u in _users_with_role("measurer", "installer")}:
        flash("Wybrany użytkownik nie może wykonywać pomiarów.", "danger")
        return redirect(_detail_url(montage, "workflow"))

    montage.material_status = material_status
    montage.installer_status = installer_status
    montage.sample_status = sample_status
    montage.installer_id = installer_id
    montage.measurer_id = measurer_id

    db.session.flush()
    log_action(montage, "UPDATE", before=before, after=serialize_model(montage), message="Zmieniono status realizacji")
    db.session.commit()

    flash("Status realizacji został zapisany.", "success")
    return redirect(_detail_url(montage, "workflow"))


# ---------------------------------------------------------------------
# NOTES / TASKS / CHECKLIST
# ---------------------------------------------------------------------
@montages_bp.route("/<int:montage_id>/notes", methods=["POST"])
@login_required
@montage_access_required(_load_montage)
def add_note(montage_id: int):
    montage = _load_montage(montage_id)
    content = form_str("content")
    if not content:
        flash("Treść notatki nie może być pusta.", "danger")
        return redirect(_detail_url(montage, "notes"))

    note = MontageNote(
        montage_id=montage.id,
        content=content,
        is_internal=form_flag("is_internal"),
        created_by_id=current_user.id,
    )
    db.session.add(note)
    db.session.flush()
    log_action(note, "CREATE", after=serialize_model(note))
    db.session.commit()

    flash("Notatka została dodana.", "success")
    return redirect(_detail_url(montage, "notes"))


@montages_bp.route("/<int:montage_id>/tasks", methods=["POST"])
@login_required
@montage_access_required(_load_montage)
def add_task(montage_id: int):
    montage = _load_montage(montage_id)
    title = form_str("title")
    if not title:
        flash("Podaj treść zadania.", "danger")
        return redirect(_detail_url(montage, "tasks"))

    task = MontageTask(montage_id=montage.id, title=title)
    db.session.add(task)
    db.session.flush()
    log_action(task, "CREATE", after=serialize_model(task))
    db.session.commit()

    flash("Zadanie zostało dodane.", "success")
    return redirect(_detail_url(montage, "tasks"))


@montages_bp.route("/<int:montage_id>/tasks/<int:task_id>/toggle", methods=["POST"])
@login_required
@montage_access_required(_load_montage)
def toggle_task(montage_id: int, task_id: int):
    montage = _load_montage(montage_id)
    task = MontageTask.query.filter_by(id=task_id, montage_id=montage.id).first_or_404()

    before = serialize_model(task)
    task.completed = not task.completed
    db.session.flush()
    log_action(task, "UPDATE", before=before, after=serialize_model(task))
    db.session.commit()
    return redirect(_detail_url(montage, "tasks"))


@montages_bp.route("/<int:montage_id>/checklist", methods=["POST"])
@login_required
@roles_required("office")
def add_checklist_item(montage_id: int):
    montage = _load_montage(montage_id)
    label = form_str("label")
    if not label:
        flash("Podaj nazwę elementu listy.", "danger")
        return redirect(_detail_url(montage, "checklist"))

    next_index = (
        db.session.query(func.max(MontageChecklistItem.order_index)).filter_by(montage_id=montage.id).scalar()
    )
    item = MontageChecklistItem(
        montage_id=montage.id, label=label, order_index=(next_index + 1) if next_index is not None else 0
    )
    db.session.add(item)
    db.session.flush()
    log_action(item, "CREATE", after=serialize_model(item), message=f"Dodano element listy: {label}")
    db.session.commit()

    flash("Element listy został dodany.", "success")
    return redirect(_detail_url(montage, "checklist"))


@montages_bp.route("/<int:montage_id>/checklist/<int:item_id>/toggle", methods=["POST"])
@login_required
@montage_access_required(_load_montage)
def toggle_checklist_item(montage_id: int, item_id: int):
    montage = _load_montage(montage_id)
    item = MontageChecklistItem.query.filter_by(id=item_id, montage_id=montage.id).first_or_404()

    before = serialize_model(item)
    item.completed = not item.completed
    db.session.flush()
    log_action(item, "UPDATE", before=before, after=serialize_model(item))
    db.session.commit()
    return redirect(_detail_url(montage, "checklist"))


# ---------------------------------------------------------------------
# ATTACHMENTS
# ---------------------------------------------------------------------
@montages_bp.route("/<int:montage_id>/attachments", methods=["POST"])
@login_required
@montage_access_required(_load_montage)
def add_attachment(montage_id: int):
    """Register an attachment by URL (files live in external storage)."""
    montage = _load_montage(montage_id)
    url = form_str("url")
    attachment_type = form_str("type") or "general"

    if not url or not (url.startswith("http://") or url.startswith("https://") or url.startswith("/")):
        flash("Podaj prawidłowy adres pliku.", "danger")
        return redirect(_detail_url(montage, "attachments"))
    if attachment_type not in ATTACHMENT_TYPES:
        flash("Nieprawidłowy typ załącznika.", "danger")
        return redirect(_detail_url(montage, "attachments"))

    attachment = MontageAttachment(
        montage_id=montage.id,
        title=form_str("title"),
        url=url,
        type=attachment_type,
        uploaded_by_id=current_user.id,
    )
    db.session.add(attachment)
    db.session.flush()
    log_action(attachment, "CREATE", after=serialize_model(attachment))
    db.session.commit()

    flash("Załącznik został dodany.", "success")
    return redirect(_detail_url(montage, "attachments"))


@montages_bp.route("/<int:montage_id>/attachments/<int:attachment_id>/delete", methods=["POST"])
@login_required
@roles_required("office")
def delete_attachment(montage_id: int, attachment_id: int):
    montage = _load_montage(montage_id)
    attachment = MontageAttachment.query.filter_by(id=attachment_id, montage_id=montage.id).first_or_404()

    before = serialize_model(attachment)
    db.session.delete(attachment)
    db.session.flush()
    log_action(attachment, "DELETE", before=before)
    db.session.commit()

    flash("Załącznik został usunięty.", "success")
    return redirect(_detail_url(montage, "attachments"))


# ---------------------------------------------------------------------
# QUOTES
# ---------------------------------------------------------------------
@montages_bp.route("/<int:montage_id>/quotes", methods=["POST"])
@login_required
@roles_required("office")
def add_quote(montage_id: int):
    montage = _load_montage(montage_id)
    total = parse_decimal(request.form.get("total_amount"))
    if request.form.get("total_amount") and total is None:
        flash("Nieprawidłowa kwota oferty.", "danger")
        return redirect(_detail_url(montage, "quotes"))

    quote = Quote(montage_id=montage.id, number=form_str("number"), total_amount=total, status="draft")
    db.session.add(quote)
    db.session.flush()
    if not quote.number:
        quote.number = f"OF/{datetime.utcnow().year}/{quote.id:04d}"
    log_action(quote, "CREATE", after=serialize_model(quote))
    db.session.commit()

    flash(f"Oferta {quote.number} została utworzona.", "success")
    return redirect(_detail_url(montage, "quotes"))


@montages_bp.route("/quotes/<int:quote_id>")
@login_required
@montage_access_required(_load_quote_montage)
def quote_detail(quote_id: int):
    quote = Quote.query.get_or_404(quote_id)
    return render_template("montages/quote_detail.html", quote=quote, montage=quote.montage)


@montages_bp.route("/quotes/<int:quote_id>/status", methods=["POST"])
@login_required
@roles_required("office")
def update_quote_status(quote_id: int):
    quote = Quote.query.get_or_404(quote_id)
    status = (request.form.get("status") or "").strip()
    if status not in QUOTE_STATUSES:
        flash("Nieprawidłowy status oferty.", "danger")
        return redirect(_detail_url(quote.montage, "quotes"))

    before = serialize_model(quote)
    quote.status = status
    if status == "accepted":
        quote.signed_at = quote.signed_at or datetime.utcnow()
    else:
        quote.signed_at = None

    db.session.flush()
    log_action(quote, "STATUS", before=before, after=serialize_model(quote))
    db.session.commit()

    flash("Status oferty został zmieniony.", "success")
    return redirect(_detail_url(quote.montage, "quotes"))


# ---------------------------------------------------------------------
# FINANCE DOCUMENTS
# ---------------------------------------------------------------------
@montages_bp.route("/<int:montage_id>/documents", methods=["POST"])
@login_required
@roles_required("office")
def add_document(montage_id: int):
    montage = _load_montage(montage_id)
    doc_type = form_str("type")
    gross = parse_decimal(request.form.get("gross_amount"))

    if doc_type not in DOCUMENT_TYPES:
        flash("Nieprawidłowy typ dokumentu.", "danger")
        return redirect(_detail_url(montage, "documents"))
    if request.form.get("gross_amount") and gross is None:
        flash("Nieprawidłowa kwota brutto.", "danger")
        return redirect(_detail_url(montage, "documents"))

    document = FinanceDocument(
        montage_id=montage.id,
        type=doc_type,
        number=form_str("number"),
        pdf_url=form_str("pdf_url"),
        gross_amount=gross,
    )
    db.session.add(document)
    db.session.flush()
    log_action(document, "CREATE", after=serialize_model(document))
    db.session.commit()

    flash("Dokument został dodany.", "success")
    return redirect(_detail_url(montage, "documents"))


# ---------------------------------------------------------------------
# SOFT DELETE / TRASH
# ---------------------------------------------------------------------
@montages_bp.route("/<int:montage_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete(montage_id: int):
    montage = _load_montage(montage_id)
    before = serialize_model(montage)
    montage.deleted_at = datetime.utcnow()

    db.session.flush()
    log_action(montage, "DELETE", before=before, after=serialize_model(montage), message="Przeniesiono do kosza")
    db.session.commit()

    flash(f"Montaż {montage.display_id} został przeniesiony do kosza.", "success")
    return redirect(url_for("montages.list_montages"))


@montages_bp.route("/trash")
@login_required
@admin_required
def trash():
    montages = Montage.query.filter(Montage.deleted_at.isnot(None)).order_by(Montage.deleted_at.desc()).all()
    return render_template("montages/trash.html", montages=montages)


@montages_bp.route("/<int:montage_id>/restore", methods=["POST"])
@login_required
@admin_required
def restore(montage_id: int):
    montage = Montage.query.get_or_404(montage_id)
    if not montage.is_deleted:
        flash("Montaż nie znajduje się w koszu.", "info")
        return redirect(_detail_url(montage))

    before = serialize_model(montage)
    montage.deleted_at = None
    db.session.flush()
    log_action(montage, "UPDATE", before=before, after=serialize_model(montage), message="Przywrócono z kosza")
    db.session.commit()

    flash(f"Montaż {montage.display_id} został przywrócony.", "success")
    return redirect(_detail_url(montage))


@montages_bp.app_template_global()
def montage_visible(montage) -> bool:
    """Template helper for links to montages (e.g. from settlements)."""
    return montage is not None and not montage.is_deleted and can_access_montage(montage)
