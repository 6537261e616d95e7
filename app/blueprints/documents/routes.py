"""
Document archive (office + admin).

Read-only list built by app.documents.get_company_documents(); ?type= filters
by finance / legal / technical.
"""

from flask import Blueprint, render_template, request
from flask_login import login_required

from ...documents import DOCUMENT_KIND_LABELS, DOCUMENT_KINDS, get_company_documents
from ...security import roles_required

documents_bp = Blueprint("documents", __name__, url_prefix="/documents")


@documents_bp.route("/")
@login_required
@roles_required("office")
def list_documents():
    kind = (request.args.get("type") or "").strip()
    if kind not in DOCUMENT_KINDS:
        kind = ""
    documents = get_company_documents(kind or None)
    return render_template(
        "documents/list.html",
        documents=documents,
        kinds=DOCUMENT_KINDS,
        kind_labels=DOCUMENT_KIND_LABELS,
        current_kind=kind,
    )
