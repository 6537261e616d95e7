"""
Tests for the montage CRM routes
"""
from datetime import datetime

import pytest

from app.extensions import db
from app.models import AuditLog, Montage, MontageChecklistItem, MontageNote, Quote
from app.seed import DEFAULT_MONTAGE_CHECKLIST


def _get(app, montage_id):
    with app.app_context():
        montage = db.session.get(Montage, montage_id)
        db.session.expunge_all()
        return montage


@pytest.mark.integration
class TestLeads:
    """Tests for lead registration and conversion"""

    def test_create_lead(self, app, client, office_id, login):
        login("biuro")
        response = client.post(
            "/montages/leads/new",
            data={"client_name": "Jan Kowalski", "contact_phone": "600 100 200", "installation_city": "Kraków"},
        )
        assert response.status_code == 302

        with app.app_context():
            montage = Montage.query.one()
            assert montage.status == "lead"
            assert montage.display_id == f"M/{datetime.utcnow().year}/0001"
            entry = AuditLog.query.filter_by(entity_type="Montage", entity_id=montage.id).one()
            assert entry.action == "CREATE"
            assert entry.username_snapshot == "biuro"

    def test_lead_number_follows_highest_existing(self, app, client, office_id, make_montage, login):
        year = datetime.utcnow().year
        make_montage(display_id=f"M/{year}/0001")
        make_montage(display_id=f"M/{year}/0005")
        login("biuro")
        client.post("/montages/leads/new", data={"client_name": "Ewa Nowak"})

        with app.app_context():
            montage = Montage.query.filter_by(client_name="Ewa Nowak").one()
            assert montage.display_id == f"M/{year}/0006"

    def test_lead_requires_client_name(self, app, client, office_id, login):
        login("biuro")
        response = client.post("/montages/leads/new", data={"client_name": " "})
        assert response.status_code == 400
        with app.app_context():
            assert Montage.query.count() == 0

    def test_lead_rejects_bad_nip(self, app, client, office_id, login):
        login("biuro")
        response = client.post("/montages/leads/new", data={"client_name": "Firma", "nip": "123"})
        assert response.status_code == 400

    def test_installer_cannot_create_lead(self, client, installer_id, login):
        login("monter")
        assert client.post("/montages/leads/new", data={"client_name": "X"}).status_code == 403

    def test_convert_lead(self, app, client, office_id, make_montage, login):
        montage_id = make_montage(status="lead", client_name="Jan")
        login("biuro")
        response = client.post(
            f"/montages/{montage_id}/convert",
            data={
                "client_name": "Jan Nowak",
                "floor_area": "52,5",
                "skirting_length": "30",
                "installation_method": "glue",
                "floor_pattern": "herringbone",
                "measurement_date": "2024-05-10",
            },
        )
        assert response.status_code == 302

        with app.app_context():
            montage = db.session.get(Montage, montage_id)
            assert montage.status == "before_measurement"
            assert montage.client_name == "Jan Nowak"
            assert str(montage.floor_area) == "52.50"
            assert montage.installation_method == "glue"
            assert montage.measurement_date == datetime(2024, 5, 10)
            labels = [item.label for item in montage.checklist_items]
            assert labels == DEFAULT_MONTAGE_CHECKLIST

    def test_convert_only_leads(self, app, client, office_id, make_montage, login):
        montage_id = make_montage(status="before_installation")
        login("biuro")
        client.post(f"/montages/{montage_id}/convert", data={"client_name": "X"})
        assert _get(app, montage_id).status == "before_installation"

    def test_convert_rejects_negative_area(self, app, client, office_id, make_montage, login):
        montage_id = make_montage(status="lead")
        login("biuro")
        client.post(f"/montages/{montage_id}/convert", data={"client_name": "X", "floor_area": "-3"})
        assert _get(app, montage_id).status == "lead"


@pytest.mark.integration
class TestVisibility:
    """Tests for list / detail access rules"""

    def test_office_sees_detail(self, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        response = client.get(f"/montages/{montage_id}")
        assert response.status_code == 200
        assert "Klient 1" in response.get_data(as_text=True)

    def test_installer_sees_only_assigned(self, client, installer_id, make_montage, login):
        own = make_montage(client_name="Mój klient", installer_id=installer_id)
        foreign = make_montage(client_name="Cudzy klient")
        login("monter")

        assert client.get(f"/montages/{own}").status_code == 200
        assert client.get(f"/montages/{foreign}").status_code == 403

        listing = client.get("/montages/").get_data(as_text=True)
        assert "Mój klient" in listing
        assert "Cudzy klient" not in listing

    def test_list_filters_by_status_and_search(self, client, office_id, make_montage, login):
        make_montage(client_name="Alfa", status="lead")
        make_montage(client_name="Beta", status="completed")
        login("biuro")

        body = client.get("/montages/?status=lead").get_data(as_text=True)
        assert "Alfa" in body and "Beta" not in body

        body = client.get("/montages/?q=bet").get_data(as_text=True)
        assert "Beta" in body and "Alfa" not in body

    def test_pipeline_view(self, client, office_id, make_montage, login):
        make_montage(client_name="Gamma")
        login("biuro")
        response = client.get("/montages/?view=pipeline")
        assert response.status_code == 200
        assert "Gamma" in response.get_data(as_text=True)


@pytest.mark.integration
class TestWorkflowRoutes:
    """Tests for status and realization changes"""

    def test_status_change_blocked_by_samples(self, app, client, office_id, make_montage, login):
        montage_id = make_montage(status="before_measurement", sample_status="sent")
        login("biuro")
        client.post(f"/montages/{montage_id}/status", data={"status": "before_first_payment"})
        assert _get(app, montage_id).status == "before_measurement"

    def test_status_change_allowed_and_audited(self, app, client, office_id, installer_id, make_montage, login):
        montage_id = make_montage(status="before_first_payment", installer_id=installer_id)
        login("biuro")
        client.post(f"/montages/{montage_id}/status", data={"status": "before_installation"})

        with app.app_context():
            assert db.session.get(Montage, montage_id).status == "before_installation"
            entry = AuditLog.query.filter_by(entity_type="Montage", action="STATUS").one()
            assert "Przed montażem" in entry.message

    def test_rollback_always_allowed(self, app, client, office_id, make_montage, login):
        montage_id = make_montage(status="before_final_invoice")
        login("biuro")
        client.post(f"/montages/{montage_id}/status", data={"status": "lead"})
        assert _get(app, montage_id).status == "lead"

    def test_installer_cannot_change_status(self, client, installer_id, make_montage, login):
        montage_id = make_montage(installer_id=installer_id)
        login("monter")
        assert client.post(f"/montages/{montage_id}/status", data={"status": "lead"}).status_code == 403

    def test_realization_assigns_installer(self, app, client, office_id, installer_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(
            f"/montages/{montage_id}/realization",
            data={
                "material_status": "ordered",
                "installer_status": "informed",
                "sample_status": "verified",
                "installer_id": str(installer_id),
            },
        )
        montage = _get(app, montage_id)
        assert montage.installer_id == installer_id
        assert montage.material_status == "ordered"
        assert montage.sample_status == "verified"

    def test_realization_rejects_non_installer(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/realization", data={"installer_id": str(office_id)})
        assert _get(app, montage_id).installer_id is None

    def test_assigned_installer_updates_measurement(self, app, client, installer_id, make_montage, login):
        montage_id = make_montage(installer_id=installer_id)
        login("monter")
        client.post(f"/montages/{montage_id}/measurement", data={"floor_area": "48", "skirting_length": "25"})
        assert str(_get(app, montage_id).floor_area) == "48.00"


@pytest.mark.integration
class TestMontageChildren:
    """Tests for notes, checklist, attachments, quotes and documents"""

    def test_add_note(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/notes", data={"content": "Klient prosi o telefon", "is_internal": "on"})
        with app.app_context():
            note = MontageNote.query.one()
            assert note.is_internal
            assert note.created_by_id == office_id

    def test_empty_note_rejected(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/notes", data={"content": ""})
        with app.app_context():
            assert MontageNote.query.count() == 0

    def test_checklist_add_and_toggle(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/checklist", data={"label": "Sprawdzić wilgotność"})
        with app.app_context():
            item_id = MontageChecklistItem.query.one().id

        client.post(f"/montages/{montage_id}/checklist/{item_id}/toggle")
        with app.app_context():
            assert db.session.get(MontageChecklistItem, item_id).completed is True

    def test_attachment_url_validated(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/attachments", data={"url": "javascript:alert(1)", "type": "photo"})
        client.post(
            f"/montages/{montage_id}/attachments",
            data={"url": "https://files.example.com/protokol.pdf", "title": "Protokół", "type": "protocol"},
        )
        with app.app_context():
            montage = db.session.get(Montage, montage_id)
            assert [a.title for a in montage.attachments] == ["Protokół"]

    def test_quote_accept_sets_signed_at(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/quotes", data={"total_amount": "12 500,00"})
        with app.app_context():
            quote = Quote.query.one()
            quote_id = quote.id
            assert quote.number.startswith("OF/")
            assert str(quote.total_amount) == "12500.00"

        client.post(f"/montages/quotes/{quote_id}/status", data={"status": "accepted"})
        with app.app_context():
            assert db.session.get(Quote, quote_id).signed_at is not None

        client.post(f"/montages/quotes/{quote_id}/status", data={"status": "rejected"})
        with app.app_context():
            assert db.session.get(Quote, quote_id).signed_at is None

    def test_quote_detail_page(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/quotes", data={"number": "OF/TEST/1"})
        with app.app_context():
            quote_id = Quote.query.one().id
        response = client.get(f"/montages/quotes/{quote_id}")
        assert response.status_code == 200
        assert "OF/TEST/1" in response.get_data(as_text=True)

    def test_document_type_validated(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        client.post(f"/montages/{montage_id}/documents", data={"type": "receipt"})
        client.post(f"/montages/{montage_id}/documents", data={"type": "final_invoice", "gross_amount": "1230"})
        with app.app_context():
            docs = db.session.get(Montage, montage_id).documents
            assert [d.type for d in docs] == ["final_invoice"]


@pytest.mark.integration
class TestTrash:
    """Tests for soft delete and restore"""

    def test_delete_and_restore(self, app, client, admin_id, make_montage, login):
        montage_id = make_montage(client_name="Do kosza")
        login("admin")

        client.post(f"/montages/{montage_id}/delete")
        assert client.get(f"/montages/{montage_id}").status_code == 404
        assert "Do kosza" not in client.get("/montages/").get_data(as_text=True)
        assert "Do kosza" in client.get("/montages/trash").get_data(as_text=True)

        client.post(f"/montages/{montage_id}/restore")
        assert client.get(f"/montages/{montage_id}").status_code == 200

    def test_office_cannot_delete(self, app, client, office_id, make_montage, login):
        montage_id = make_montage()
        login("biuro")
        assert client.post(f"/montages/{montage_id}/delete").status_code == 403
        assert _get(app, montage_id).deleted_at is None
