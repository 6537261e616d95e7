"""
Tests for the company document archive
"""
from datetime import datetime
from decimal import Decimal

import pytest

from app.documents import attachment_document_type, attachment_file_type, get_company_documents
from app.extensions import db
from app.models import FinanceDocument, Montage, MontageAttachment, Quote


@pytest.mark.unit
class TestClassification:
    """Tests for attachment classification"""

    def test_file_type(self):
        assert attachment_file_type("https://cdn.example.com/a/protokol.PDF") == "pdf"
        assert attachment_file_type("/files/zdjecie.jpeg?size=large") == "image"
        assert attachment_file_type("https://drive.example.com/d/abc") == "other"

    def test_protocols_and_contracts_are_legal(self):
        assert attachment_document_type("protocol", None) == "legal"
        assert attachment_document_type("scan", "Umowa montażu") == "legal"
        assert attachment_document_type("scan", "Skan PROTOKÓŁ odbioru") == "legal"

    def test_other_paperwork_is_technical(self):
        assert attachment_document_type("sketch", "Szkic pomieszczenia") == "technical"


@pytest.fixture
def archive(app, make_montage):
    montage_id = make_montage(client_name="Jan Archiwum")
    with app.app_context():
        db.session.add_all(
            [
                FinanceDocument(
                    montage_id=montage_id,
                    type="final_invoice",
                    number="FV/1/2024",
                    gross_amount=Decimal("1230.00"),
                    created_at=datetime(2024, 3, 1),
                ),
                MontageAttachment(
                    montage_id=montage_id,
                    title="Protokół odbioru",
                    url="https://files.example.com/p.pdf",
                    type="protocol",
                    created_at=datetime(2024, 3, 5),
                ),
                MontageAttachment(
                    montage_id=montage_id,
                    title="Szkic",
                    url="https://files.example.com/s.png",
                    type="sketch",
                    created_at=datetime(2024, 2, 1),
                ),
                MontageAttachment(
                    montage_id=montage_id,
                    title="Zdjęcie salonu",
                    url="https://files.example.com/z.jpg",
                    type="photo",
                    created_at=datetime(2024, 3, 6),
                ),
                Quote(montage_id=montage_id, number="OF/2024/0001", status="accepted", signed_at=datetime(2024, 3, 3)),
                Quote(montage_id=montage_id, number="OF/2024/0002", status="draft"),
            ]
        )
        db.session.commit()
    return montage_id


@pytest.mark.integration
class TestArchive:
    """Tests for get_company_documents and the archive page"""

    def test_union_sorted_newest_first(self, app, archive):
        with app.test_request_context():
            documents = get_company_documents()
        assert [d.display_id for d in documents] == ["Protokół odbioru", "OF/2024/0001", "FV/1/2024", "Szkic"]
        assert [d.source_table for d in documents] == ["attachments", "quotes", "documents", "attachments"]

    def test_filter_by_kind(self, app, archive):
        with app.test_request_context():
            legal = get_company_documents("legal")
            finance = get_company_documents("finance")
        assert {d.display_id for d in legal} == {"Protokół odbioru", "OF/2024/0001"}
        assert [d.display_id for d in finance] == ["FV/1/2024"]
        assert finance[0].context.client_name == "Jan Archiwum"

    def test_accepted_quote_links_to_quote_page(self, app, archive):
        with app.test_request_context():
            quote = next(d for d in get_company_documents("legal") if d.source_table == "quotes")
        assert quote.url == f"/montages/quotes/{quote.id}"

    def test_trashed_montage_documents_are_hidden(self, app, archive, make_montage):
        other_id = make_montage(client_name="Anna Aktywna")
        with app.app_context():
            db.session.add(FinanceDocument(montage_id=other_id, type="proforma", number="PRO/7/2024"))
            db.session.get(Montage, archive).deleted_at = datetime(2024, 4, 1)
            db.session.commit()
        with app.test_request_context():
            documents = get_company_documents()
        assert [d.display_id for d in documents] == ["PRO/7/2024"]

    def test_archive_page(self, client, office_id, archive, login):
        login("biuro")
        body = client.get("/documents/?type=finance").get_data(as_text=True)
        assert "FV/1/2024" in body
        assert "Szkic" not in body

    def test_archive_forbidden_for_installer(self, client, installer_id, login):
        login("monter")
        assert client.get("/documents/").status_code == 403
