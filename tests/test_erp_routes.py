"""
Tests for the ERP catalog: products, prices, suppliers, dictionaries and attributes
"""
from decimal import Decimal

import pytest

from app.extensions import db
from app.models import (
    Attribute,
    AttributeOption,
    Brand,
    Category,
    Collection,
    Product,
    ProductAttributeValue,
    PurchasePrice,
    Supplier,
)
from app.seed import seed_dictionaries


@pytest.fixture
def catalog(app):
    """One product and two active suppliers; returns their ids"""
    with app.app_context():
        product = Product(sku="PNL-001", name="Panel Dąb Naturalny", unit="m2", is_active=True)
        first = Supplier(name="Hurtownia Podłóg", nip="1234567890", is_active=True)
        second = Supplier(name="Parkiet-Pol", is_active=True)
        db.session.add_all([product, first, second])
        db.session.commit()
        return {"product": product.id, "first": first.id, "second": second.id}


@pytest.mark.integration
class TestProducts:
    """Tests for product CRUD"""

    def test_create_product(self, app, client, office_id, login):
        login("biuro")
        response = client.post(
            "/erp/products/new",
            data={"sku": "LST-10", "name": "Listwa MDF", "unit": "mb", "sale_price": "12,90", "is_active": "on"},
        )
        assert response.status_code == 302
        with app.app_context():
            product = Product.query.filter_by(sku="LST-10").one()
            assert product.sale_price == Decimal("12.90")
            assert product.is_active

    def test_duplicate_sku_rejected(self, app, client, office_id, catalog, login):
        login("biuro")
        response = client.post("/erp/products/new", data={"sku": "PNL-001", "name": "Kopia"})
        assert response.status_code == 400
        with app.app_context():
            assert Product.query.count() == 1

    def test_collection_must_match_brand(self, app, client, office_id, login):
        with app.app_context():
            brand_a, brand_b = Brand(name="Alfa"), Brand(name="Beta")
            db.session.add_all([brand_a, brand_b])
            db.session.flush()
            collection = Collection(name="Classic", brand_id=brand_a.id)
            db.session.add(collection)
            db.session.commit()
            ids = (brand_b.id, collection.id)

        login("biuro")
        response = client.post(
            "/erp/products/new",
            data={"sku": "X-1", "name": "X", "brand_id": str(ids[0]), "collection_id": str(ids[1])},
        )
        assert response.status_code == 400

    def test_list_filters(self, client, office_id, catalog, login):
        login("biuro")
        assert "Panel Dąb Naturalny" in client.get("/erp/products?q=pnl").get_data(as_text=True)
        assert "Panel Dąb Naturalny" not in client.get("/erp/products?q=listwa").get_data(as_text=True)

    def test_installer_has_no_access(self, client, installer_id, login):
        login("monter")
        assert client.get("/erp/products").status_code == 403

    def test_detail_and_edit_pages(self, client, office_id, catalog, login):
        login("biuro")
        assert client.get(f"/erp/products/{catalog['product']}").status_code == 200
        assert client.get(f"/erp/products/{catalog['product']}/edit").status_code == 200


@pytest.mark.integration
class TestPurchasePrices:
    """Tests for supplier prices and the preferred flag"""

    def test_first_price_becomes_preferred(self, app, client, office_id, catalog, login):
        login("biuro")
        client.post(
            f"/erp/products/{catalog['product']}/prices",
            data={"supplier_id": str(catalog["first"]), "net_price": "45,50"},
        )
        client.post(
            f"/erp/products/{catalog['product']}/prices",
            data={"supplier_id": str(catalog["second"]), "net_price": "42"},
        )
        with app.app_context():
            product = db.session.get(Product, catalog["product"])
            assert product.preferred_price.supplier_id == catalog["first"]
            assert product.lowest_purchase_price == Decimal("42.00")

    def test_switch_preferred(self, app, client, office_id, catalog, login):
        login("biuro")
        for supplier in ("first", "second"):
            client.post(
                f"/erp/products/{catalog['product']}/prices",
                data={"supplier_id": str(catalog[supplier]), "net_price": "40"},
            )
        with app.app_context():
            second_price = PurchasePrice.query.filter_by(supplier_id=catalog["second"]).one().id

        client.post(f"/erp/prices/{second_price}/preferred")
        with app.app_context():
            preferred = PurchasePrice.query.filter_by(is_preferred=True).all()
            assert [p.id for p in preferred] == [second_price]

    def test_one_price_per_supplier(self, app, client, office_id, catalog, login):
        login("biuro")
        for _ in range(2):
            client.post(
                f"/erp/products/{catalog['product']}/prices",
                data={"supplier_id": str(catalog["first"]), "net_price": "40"},
            )
        with app.app_context():
            assert PurchasePrice.query.count() == 1

    def test_price_must_be_positive(self, app, client, office_id, catalog, login):
        login("biuro")
        client.post(
            f"/erp/products/{catalog['product']}/prices",
            data={"supplier_id": str(catalog["first"]), "net_price": "0"},
        )
        with app.app_context():
            assert PurchasePrice.query.count() == 0


@pytest.mark.integration
class TestSuppliers:
    """Tests for supplier CRUD"""

    def test_create_supplier_normalizes_nip(self, app, client, office_id, login):
        login("biuro")
        client.post("/erp/suppliers/new", data={"name": "Drewno SA", "nip": "987-654-32-10", "is_active": "on"})
        with app.app_context():
            assert Supplier.query.filter_by(name="Drewno SA").one().nip == "9876543210"

    def test_duplicate_nip_rejected(self, client, office_id, catalog, login):
        login("biuro")
        response = client.post("/erp/suppliers/new", data={"name": "Inna firma", "nip": "1234567890"})
        assert response.status_code == 400

    def test_supplier_with_prices_cannot_be_deleted(self, app, client, office_id, catalog, login):
        login("biuro")
        client.post(
            f"/erp/products/{catalog['product']}/prices",
            data={"supplier_id": str(catalog["first"]), "net_price": "40"},
        )
        client.post(f"/erp/suppliers/{catalog['first']}/delete")
        client.post(f"/erp/suppliers/{catalog['second']}/delete")
        with app.app_context():
            assert [s.id for s in Supplier.query.all()] == [catalog["first"]]

    def test_supplier_detail_lists_products(self, client, office_id, catalog, login):
        login("biuro")
        client.post(
            f"/erp/products/{catalog['product']}/prices",
            data={"supplier_id": str(catalog["first"]), "net_price": "40", "supplier_sku": "HP-77"},
        )
        body = client.get(f"/erp/suppliers/{catalog['first']}").get_data(as_text=True)
        assert "HP-77" in body


@pytest.mark.integration
class TestDictionaries:
    """Tests for categories, brands and collections"""

    def test_create_update_delete_category(self, app, client, office_id, login):
        login("biuro")
        client.post("/erp/dictionaries/categories", data={"action": "create", "name": "Panele"})
        with app.app_context():
            category_id = Category.query.one().id

        client.post(
            "/erp/dictionaries/categories",
            data={"action": "update", "id": str(category_id), "name": "Panele winylowe", "sort_order": "3"},
        )
        with app.app_context():
            category = db.session.get(Category, category_id)
            assert (category.name, category.sort_order) == ("Panele winylowe", 3)

        client.post("/erp/dictionaries/categories", data={"action": "delete", "id": str(category_id)})
        with app.app_context():
            assert Category.query.count() == 0

    def test_category_in_use_cannot_be_deleted(self, app, client, office_id, login):
        with app.app_context():
            category = Category(name="Listwy")
            db.session.add(category)
            db.session.flush()
            db.session.add(Product(sku="L-1", name="Listwa", category_id=category.id))
            db.session.commit()
            category_id = category.id

        login("biuro")
        client.post("/erp/dictionaries/categories", data={"action": "delete", "id": str(category_id)})
        with app.app_context():
            assert db.session.get(Category, category_id) is not None
            assert Product.query.one().category_id == category_id

    def test_collection_requires_brand(self, app, client, office_id, login):
        login("biuro")
        client.post("/erp/dictionaries/collections", data={"action": "create", "name": "Vintage"})
        with app.app_context():
            assert Collection.query.count() == 0

    def test_duplicate_brand_rejected(self, app, client, office_id, login):
        login("biuro")
        for _ in range(2):
            client.post("/erp/dictionaries/brands", data={"action": "create", "name": "Quick-Step"})
        with app.app_context():
            assert Brand.query.count() == 1

    def test_dictionary_pages_render(self, client, office_id, login):
        login("biuro")
        for path in ("categories", "brands", "collections"):
            assert client.get(f"/erp/dictionaries/{path}").status_code == 200


@pytest.mark.integration
class TestAttributes:
    """Tests for technical attributes and product values"""

    def test_seeded_select_attribute_values(self, app, client, office_id, catalog, login):
        with app.app_context():
            created = seed_dictionaries()
            assert created["attributes"] > 0
            attribute = Attribute.query.filter_by(code="abrasion_class").one()
            attribute_id = attribute.id

        login("biuro")
        field = f"attr_{attribute_id}"
        client.post(f"/erp/products/{catalog['product']}/attributes", data={field: "AC9"})
        with app.app_context():
            assert ProductAttributeValue.query.count() == 0

        client.post(f"/erp/products/{catalog['product']}/attributes", data={field: "AC4"})
        with app.app_context():
            assert ProductAttributeValue.query.one().value == "AC4"

        client.post(f"/erp/products/{catalog['product']}/attributes", data={field: ""})
        with app.app_context():
            assert ProductAttributeValue.query.count() == 0

    def test_seed_is_idempotent(self, app):
        with app.app_context():
            seed_dictionaries()
            again = seed_dictionaries()
            assert set(again.values()) == {0}

    def test_create_attribute_with_options(self, app, client, office_id, login):
        login("biuro")
        client.post("/erp/attributes", data={"code": "Thickness", "name": "Grubość", "type": "select", "unit": "mm"})
        with app.app_context():
            attribute = Attribute.query.one()
            assert attribute.code == "thickness"
            attribute_id = attribute.id

        client.post(f"/erp/attributes/{attribute_id}/options", data={"value": "8"})
        client.post(f"/erp/attributes/{attribute_id}/options", data={"value": "8"})
        with app.app_context():
            assert AttributeOption.query.count() == 1

        assert client.get(f"/erp/attributes/{attribute_id}").status_code == 200
        assert client.get("/erp/attributes").status_code == 200
