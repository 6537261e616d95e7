"""
Tests for login, logout and first-admin bootstrap
"""
import pytest

from app.extensions import db
from app.models import User
from conftest import PASSWORD


@pytest.mark.integration
class TestLogin:
    """Tests for /auth/login"""

    def test_login_page_renders(self, client):
        response = client.get("/auth/login")
        assert response.status_code == 200

    def test_successful_login_redirects_to_montages(self, client, office_id, login):
        response = login("biuro")
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/montages/")

    def test_wrong_password_is_rejected(self, client, office_id, login):
        response = login("biuro", "zle-haslo")
        assert response.status_code == 401
        assert "Nieprawidłowa nazwa użytkownika lub hasło." in response.get_data(as_text=True)

    def test_unknown_user_is_rejected(self, client, login):
        assert login("nikt").status_code == 401

    def test_inactive_user_is_rejected(self, client, make_user, login):
        make_user("byly", ["office"], is_active=False)
        assert login("byly").status_code == 403

    def test_next_parameter_is_followed_when_local(self, client, office_id):
        response = client.post(
            "/auth/login?next=/erp/products",
            data={"username": "biuro", "password": PASSWORD},
        )
        assert response.headers["Location"].endswith("/erp/products")

    def test_external_next_is_ignored(self, client, office_id):
        response = client.post(
            "/auth/login?next=https://evil.example.com/",
            data={"username": "biuro", "password": PASSWORD},
        )
        assert "evil.example.com" not in response.headers["Location"]

    def test_protected_page_requires_login(self, client):
        response = client.get("/montages/")
        assert response.status_code == 302
        assert "/auth/login" in response.headers["Location"]

    def test_logout(self, client, office_id, login):
        login("biuro")
        response = client.get("/auth/logout")
        assert response.status_code == 302
        assert client.get("/montages/").status_code == 302


@pytest.mark.integration
class TestSeedAdmin:
    """Tests for the first-admin bootstrap form"""

    def test_creates_admin_when_no_users(self, app, client):
        response = client.post("/auth/seed-admin", data={"username": "szef", "password": "tajne-haslo"})
        assert response.status_code == 302

        with app.app_context():
            user = User.query.filter_by(username="szef").one()
            assert user.is_admin
            assert user.check_password("tajne-haslo")

    def test_blocked_once_a_user_exists(self, app, client, office_id):
        client.post("/auth/seed-admin", data={"username": "intruz", "password": "x"})
        with app.app_context():
            assert db.session.query(User).filter_by(username="intruz").first() is None
