"""
app/documents.py

Company document archive.

There is no documents table of its own: the archive is a read-time union of
- finance documents (proforma / invoices),
- montage attachments that are paperwork (protocols, contracts, sketches, scans),
- accepted quotes (treated as signed contracts),
sorted newest first. Montages in the trash are left out.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import url_for
from sqlalchemy import or_

from .models import FinanceDocument, Montage, MontageAttachment, Quote

DOCUMENT_KINDS = ("finance", "legal", "technical")
DOCUMENT_KIND_LABELS = {
    "finance": "Finansowe",
    "legal": "Prawne",
    "technical": "Techniczne",
}

# Loose photos are not documents.
SKIPPED_ATTACHMENT_TYPES = ("general", "photo")

_IMAGE_RE = re.compile(r"\.(jpg|jpeg|png|webp)$", re.IGNORECASE)
_LEGAL_TITLE_WORDS = ("protokół", "umowa")


@dataclass
class DocumentContext:
    id: Optional[int]
    type: str
    label: str
    client_name: str


@dataclass
class UnifiedDocument:
    id: int
    display_id: str
    type: str  # finance | legal | technical
    file_type: str  # pdf | image | link | other
    url: str
    created_at: datetime
    context: DocumentContext
    source_table: str  # documents | attachments | quotes


def _montage_context(montage: Optional[Montage]) -> DocumentContext:
    if montage is None:
        return DocumentContext(id=None, type="montage", label="Nieznane powiązanie", client_name="Nieznany klient")
    return DocumentContext(
        id=montage.id,
        type="montage",
        label=f"Montaż: {montage.client_name}",
        client_name=montage.client_name,
    )


def attachment_file_type(url: str) -> str:
    url = (url or "").split("?", 1)[0]
    if url.lower().endswith(".pdf"):
        return "pdf"
    if _IMAGE_RE.search(url):
        return "image"
    return "other"


def attachment_document_type(attachment_type: str, title: Optional[str]) -> str:
    title = (title or "").lower()
    if attachment_type == "protocol" or any(word in title for word in _LEGAL_TITLE_WORDS):
        return "legal"
    return "technical"


def _finance_documents() -> list:
    out = []
    documents = (
        FinanceDocument.query.outerjoin(Montage, FinanceDocument.montage_id == Montage.id)
        .filter(or_(FinanceDocument.montage_id.is_(None), Montage.deleted_at.is_(None)))
        .order_by(FinanceDocument.created_at.desc())
        .all()
    )
    for doc in documents:
        out.append(
            UnifiedDocument(
                id=doc.id,
                display_id=doc.number or f"DOK/{doc.id}",
                type="finance",
                file_type="pdf",
                url=doc.pdf_url or "#",
                created_at=doc.created_at,
                context=_montage_context(doc.montage),
                source_table="documents",
            )
        )
    return out


def _attachment_documents() -> list:
    attachments = (
        MontageAttachment.query.join(Montage, MontageAttachment.montage_id == Montage.id)
        .filter(Montage.deleted_at.is_(None), MontageAttachment.type.notin_(SKIPPED_ATTACHMENT_TYPES))
        .order_by(MontageAttachment.created_at.desc())
        .all()
    )
    return [
        UnifiedDocument(
            id=att.id,
            display_id=att.title or "Bez nazwy",
            type=attachment_document_type(att.type, att.title),
            file_type=attachment_file_type(att.url),
            url=att.url,
            created_at=att.created_at,
            context=_montage_context(att.montage),
            source_table="attachments",
        )
        for att in attachments
    ]


def _quote_documents() -> list:
    quotes = (
        Quote.query.join(Montage, Quote.montage_id == Montage.id)
        .filter(Montage.deleted_at.is_(None), Quote.status == "accepted")
        .order_by(Quote.updated_at.desc())
        .all()
    )
    return [
        UnifiedDocument(
            id=q.id,
            display_id=q.number or f"OFERTA/{q.id}",
            type="legal",
            file_type="link",
            url=url_for("montages.quote_detail", quote_id=q.id),
            created_at=q.signed_at or q.updated_at or q.created_at,
            context=_montage_context(q.montage),
            source_table="quotes",
        )
        for q in quotes
    ]


def get_company_documents(kind: Optional[str] = None) -> list:
    """All archive documents, newest first; optionally only one kind (finance/legal/technical)."""
    documents = _finance_documents() + _attachment_documents() + _quote_documents()
    if kind in DOCUMENT_KINDS:
        documents = [d for d in documents if d.type == kind]
    documents.sort(key=lambda d: d.created_at or datetime.min, reverse=True)
    return documents
