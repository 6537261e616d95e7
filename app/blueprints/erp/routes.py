"""
app/blueprints/erp/routes.py

ERP catalog routes (office + admin).

Scope:
- Products CRUD with filters and technical attribute values
- Purchase prices per supplier (one per supplier, one preferred per product)
- Suppliers CRUD + supplier detail with its products
- Dictionaries: categories, brands, collections (generic list/create/update/delete page)
- Technical attributes with select options

SECURITY:
- UI is never trusted. Permissions and validations are enforced here server-side.

AUDIT:
- CREATE/UPDATE/DELETE of catalog data is audited via app/audit.py.

Referenced dictionary entries and suppliers cannot be deleted; the database
constraint (or the explicit reference check) is translated to a Polish message.
"""

from __future__ import annotations

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import login_required
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import (
    ATTRIBUTE_TYPES,
    PRODUCT_UNITS,
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
from ...security import roles_required
from ...utils import form_flag, form_str, normalize_digits, parse_decimal, parse_optional_int

logger = logging.getLogger(__name__)

erp_bp = Blueprint("erp", __name__, url_prefix="/erp")

IN_USE_MESSAGE = "Nie można usunąć wpisu, ponieważ jest używany przez inne dane."


def _commit_delete(entity, before: dict) -> bool:
    """Delete + audit + commit; False (rolled back) when the row is still referenced."""
    try:
        db.session.delete(entity)
        db.session.flush()
        log_action(entity, "DELETE", before=before)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning("Delete of %s #%s blocked by references", entity.__class__.__name__, before.get("id"))
        return False
    return True


# ----------------------------------------------------------------------
# PRODUCTS
# ----------------------------------------------------------------------
def _read_product_form(product: Product) -> str | None:
    sku = form_str("sku")
    name = form_str("name")
    unit = form_str("unit") or "m2"
    sale_price = parse_decimal(request.form.get("sale_price"))

    if not sku or not name:
        return "SKU i nazwa produktu są wymagane."
    if unit not in PRODUCT_UNITS:
        return "Nieprawidłowa jednostka."
    if request.form.get("sale_price") and (sale_price is None or sale_price < 0):
        return "Nieprawidłowa cena sprzedaży."

    duplicate = Product.query.filter(Product.sku == sku, Product.id != product.id).first()
    if duplicate:
        return f"Produkt o SKU {sku} już istnieje."

    category_id = parse_optional_int(request.form.get("category_id"))
    brand_id = parse_optional_int(request.form.get("brand_id"))
    collection_id = parse_optional_int(request.form.get("collection_id"))
    if category_id and not db.session.get(Category, category_id):
        return "Wybrana kategoria nie istnieje."
    if brand_id and not db.session.get(Brand, brand_id):
        return "Wybrana marka nie istnieje."
    if collection_id:
        collection = db.session.get(Collection, collection_id)
        if not collection:
            return "Wybrana kolekcja nie istnieje."
        if brand_id and collection.brand_id and collection.brand_id != brand_id:
            return "Kolekcja nie należy do wybranej marki."

    product.sku = sku
    product.name = name
    product.unit = unit
    product.sale_price = sale_price
    product.description = form_str("description")
    product.is_active = form_flag("is_active")
    product.category_id = category_id
    product.brand_id = brand_id
    product.collection_id = collection_id
    return None


def _product_form_context() -> dict:
    return {
        "categories": Category.query.order_by(Category.sort_order.asc(), Category.name.asc()).all(),
        "brands": Brand.query.order_by(Brand.sort_order.asc(), Brand.name.asc()).all(),
        "collections": Collection.query.order_by(Collection.name.asc()).all(),
        "units": PRODUCT_UNITS,
    }


@erp_bp.route("/products")
@login_required
@roles_required("office")
def products_list():
    q = Product.query

    search = (request.args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Product.sku.ilike(like), Product.name.ilike(like)))

    category_id = parse_optional_int(request.args.get("category_id"))
    if category_id:
        q = q.filter(Product.category_id == category_id)

    brand_id = parse_optional_int(request.args.get("brand_id"))
    if brand_id:
        q = q.filter(Product.brand_id == brand_id)

    active = request.args.get("active")
    if active in ("1", "0"):
        q = q.filter(Product.is_active.is_(active == "1"))

    products = q.order_by(Product.name.asc()).all()
    return render_template("erp/products_list.html", products=products, filters=request.args, **_product_form_context())


@erp_bp.route("/products/new", methods=["GET", "POST"])
@login_required
@roles_required("office")
def product_create():
    if request.method == "POST":
        product = Product()
        error = _read_product_form(product)
        if error:
            flash(error, "danger")
            return render_template("erp/product_form.html", product=None, form=request.form, **_product_form_context()), 400

        db.session.add(product)
        db.session.flush()
        log_action(product, "CREATE", after=serialize_model(product))
        db.session.commit()

        flash("Produkt został utworzony.", "success")
        return redirect(url_for("erp.product_detail", product_id=product.id))

    return render_template("erp/product_form.html", product=None, form={}, **_product_form_context())


@erp_bp.route("/products/<int:product_id>")
@login_required
@roles_required("office")
def product_detail(product_id: int):
    product = Product.query.get_or_404(product_id)
    values = {v.attribute_id: v.value for v in product.attribute_values}
    return render_template(
        "erp/product_detail.html",
        product=product,
        attributes=Attribute.query.order_by(Attribute.name.asc()).all(),
        attribute_values=values,
        suppliers=Supplier.query.filter_by(is_active=True).order_by(Supplier.name.asc()).all(),
    )


@erp_bp.route("/products/<int:product_id>/edit", methods=["GET", "POST"])
@login_required
@roles_required("office")
def product_edit(product_id: int):
    product = Product.query.get_or_404(product_id)

    if request.method == "POST":
        before = serialize_model(product)
        error = _read_product_form(product)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("erp.product_edit", product_id=product.id))

        db.session.flush()
        log_action(product, "UPDATE", before=before, after=serialize_model(product))
        db.session.commit()

        flash("Produkt został zaktualizowany.", "success")
        return redirect(url_for("erp.product_detail", product_id=product.id))

    return render_template("erp/product_form.html", product=product, form={}, **_product_form_context())


@erp_bp.route("/products/<int:product_id>/delete", methods=["POST"])
@login_required
@roles_required("office")
def product_delete(product_id: int):
    product = Product.query.get_or_404(product_id)
    if not _commit_delete(product, serialize_model(product)):
        flash(IN_USE_MESSAGE, "danger")
        return redirect(url_for("erp.product_detail", product_id=product_id))

    flash("Produkt został usunięty.", "success")
    return redirect(url_for("erp.products_list"))


@erp_bp.route("/products/<int:product_id>/attributes", methods=["POST"])
@login_required
@roles_required("office")
def product_attributes(product_id: int):
    """Save technical attribute values; an empty field removes the value."""
    product = Product.query.get_or_404(product_id)
    current = {v.attribute_id: v for v in product.attribute_values}

    for attribute in Attribute.query.all():
        raw = (request.form.get(f"attr_{attribute.id}") or "").strip()
        existing = current.get(attribute.id)

        if not raw:
            if existing:
                product.attribute_values.remove(existing)
            continue

        if attribute.type == "number" and parse_decimal(raw) is None:
            flash(f"Atrybut „{attribute.name}” wymaga wartości liczbowej.", "danger")
            db.session.rollback()
            return redirect(url_for("erp.product_detail", product_id=product.id))
        if attribute.type == "select" and raw not in {o.value for o in attribute.options}:
            flash(f"Nieprawidłowa wartość atrybutu „{attribute.name}”.", "danger")
            db.session.rollback()
            return redirect(url_for("erp.product_detail", product_id=product.id))

        if existing:
            existing.value = raw
        else:
            product.attribute_values.append(ProductAttributeValue(attribute_id=attribute.id, value=raw))

    db.session.flush()
    log_action(product, "UPDATE", message="Zmieniono atrybuty techniczne")
    db.session.commit()

    flash("Atrybuty zostały zapisane.", "success")
    return redirect(url_for("erp.product_detail", product_id=product.id))


# ----------------------------------------------------------------------
# PURCHASE PRICES
# ----------------------------------------------------------------------
def _set_preferred(product: Product, price: PurchasePrice) -> None:
    """Only one preferred supplier price per product."""
    for other in product.purchase_prices:
        other.is_preferred = other is price


@erp_bp.route("/products/<int:product_id>/prices", methods=["POST"])
@login_required
@roles_required("office")
def price_add(product_id: int):
    product = Product.query.get_or_404(product_id)
    back = url_for("erp.product_detail", product_id=product.id)

    supplier_id = parse_optional_int(request.form.get("supplier_id"))
    net_price = parse_decimal(request.form.get("net_price"))

    supplier = db.session.get(Supplier, supplier_id) if supplier_id else None
    if not supplier or not supplier.is_active:
        flash("Wybierz aktywnego dostawcę.", "danger")
        return redirect(back)
    if net_price is None or net_price <= 0:
        flash("Cena musi być większa od 0.", "danger")
        return redirect(back)
    if PurchasePrice.query.filter_by(product_id=product.id, supplier_id=supplier.id).first():
        flash("Ten dostawca ma już cenę dla tego produktu.", "warning")
        return redirect(back)

    price = PurchasePrice(
        product=product,
        supplier_id=supplier.id,
        net_price=net_price,
        supplier_sku=form_str("supplier_sku"),
    )
    db.session.add(price)
    db.session.flush()
    if form_flag("is_preferred") or len(product.purchase_prices) == 1:
        _set_preferred(product, price)

    log_action(price, "CREATE", after=serialize_model(price))
    db.session.commit()

    flash("Cena została dodana.", "success")
    return redirect(back)


@erp_bp.route("/prices/<int:price_id>/preferred", methods=["POST"])
@login_required
@roles_required("office")
def price_preferred(price_id: int):
    price = PurchasePrice.query.get_or_404(price_id)
    before = serialize_model(price)
    _set_preferred(price.product, price)

    db.session.flush()
    log_action(price, "UPDATE", before=before, after=serialize_model(price), message="Ustawiono cenę preferowaną")
    db.session.commit()

    flash(f"Preferowany dostawca: {price.supplier.name}.", "success")
    return redirect(url_for("erp.product_detail", product_id=price.product_id))


@erp_bp.route("/prices/<int:price_id>/delete", methods=["POST"])
@login_required
@roles_required("office")
def price_delete(price_id: int):
    price = PurchasePrice.query.get_or_404(price_id)
    product_id = price.product_id
    _commit_delete(price, serialize_model(price))
    flash("Cena została usunięta.", "success")
    return redirect(url_for("erp.product_detail", product_id=product_id))


# ----------------------------------------------------------------------
# SUPPLIERS
# ----------------------------------------------------------------------
def _read_supplier_form(supplier: Supplier) -> str | None:
    name = form_str("name")
    nip = normalize_digits(request.form.get("nip"))

    if not name or len(name) < 2:
        return "Nazwa dostawcy musi mieć min. 2 znaki."
    if nip and len(nip) != 10:
        return "NIP musi składać się z 10 cyfr."
    if nip and Supplier.query.filter(Supplier.nip == nip, Supplier.id != supplier.id).first():
        return "Dostawca o tym NIP już istnieje."

    supplier.name = name
    supplier.nip = nip or None
    supplier.email = form_str("email")
    supplier.phone = form_str("phone")
    supplier.address = form_str("address")
    supplier.city = form_str("city")
    supplier.postal_code = form_str("postal_code")
    supplier.bank_account = normalize_digits(request.form.get("bank_account")) or None
    supplier.notes = form_str("notes")
    supplier.is_active = form_flag("is_active")
    return None


@erp_bp.route("/suppliers")
@login_required
@roles_required("office")
def suppliers_list():
    suppliers = Supplier.query.order_by(Supplier.name.asc()).all()
    return render_template("erp/suppliers_list.html", suppliers=suppliers)


@erp_bp.route("/suppliers/new", methods=["GET", "POST"])
@login_required
@roles_required("office")
def supplier_create():
    if request.method == "POST":
        supplier = Supplier()
        error = _read_supplier_form(supplier)
        if error:
            flash(error, "danger")
            return render_template("erp/supplier_form.html", supplier=None, form=request.form), 400

        db.session.add(supplier)
        db.session.flush()
        log_action(supplier, "CREATE", after=serialize_model(supplier))
        db.session.commit()

        flash("Dostawca został utworzony.", "success")
        return redirect(url_for("erp.suppliers_list"))

    return render_template("erp/supplier_form.html", supplier=None, form={})


@erp_bp.route("/suppliers/<int:supplier_id>")
@login_required
@roles_required("office")
def supplier_detail(supplier_id: int):
    supplier = Supplier.query.get_or_404(supplier_id)
    prices = (
        PurchasePrice.query.filter_by(supplier_id=supplier.id)
        .join(Product)
        .order_by(Product.name.asc())
        .all()
    )
    return render_template("erp/supplier_detail.html", supplier=supplier, prices=prices)


@erp_bp.route("/suppliers/<int:supplier_id>/edit", methods=["GET", "POST"])
@login_required
@roles_required("office")
def supplier_edit(supplier_id: int):
    supplier = Supplier.query.get_or_404(supplier_id)

    if request.method == "POST":
        before = serialize_model(supplier)
        error = _read_supplier_form(supplier)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("erp.supplier_edit", supplier_id=supplier.id))

        db.session.flush()
        log_action(supplier, "UPDATE", before=before, after=serialize_model(supplier))
        db.session.commit()

        flash("Dostawca został zaktualizowany.", "success")
        return redirect(url_for("erp.supplier_detail", supplier_id=supplier.id))

    return render_template("erp/supplier_form.html", supplier=supplier, form={})


@erp_bp.route("/suppliers/<int:supplier_id>/delete", methods=["POST"])
@login_required
@roles_required("office")
def supplier_delete(supplier_id: int):
    supplier = Supplier.query.get_or_404(supplier_id)
    if supplier.purchase_prices:
        flash("Nie można usunąć dostawcy, który ma przypisane ceny produktów.", "danger")
        return redirect(url_for("erp.supplier_detail", supplier_id=supplier.id))

    if not _commit_delete(supplier, serialize_model(supplier)):
        flash(IN_USE_MESSAGE, "danger")
        return redirect(url_for("erp.supplier_detail", supplier_id=supplier_id))

    flash("Dostawca został usunięty.", "success")
    return redirect(url_for("erp.suppliers_list"))


# ----------------------------------------------------------------------
# DICTIONARIES (categories / brands / collections)
# ----------------------------------------------------------------------
def _dictionary_references(entry) -> int:
    """Number of rows referencing a dictionary entry."""
    count = len(entry.products)
    if isinstance(entry, Brand):
        count += len(entry.collections)
    return count


def _dictionary_page(model, label: str):
    """
    Generic dictionary page.

    Pattern:
    - GET: list
    - POST: action in {create, update, delete}
    - Audited for CREATE/UPDATE/DELETE.
    """
    with_brand = model is Collection
    brands = Brand.query.order_by(Brand.name.asc()).all() if with_brand else []

    if request.method == "POST":
        action = (request.form.get("action") or "").strip()

        if action in ("create", "update"):
            name = form_str("name")
            sort_order = parse_optional_int(request.form.get("sort_order")) or 0
            brand_id = parse_optional_int(request.form.get("brand_id")) if with_brand else None

            if not name:
                flash("Nazwa jest wymagana.", "danger")
                return redirect(request.path)
            if with_brand and not (brand_id and db.session.get(Brand, brand_id)):
                flash("Wybierz markę i wpisz nazwę kolekcji.", "danger")
                return redirect(request.path)

            if action == "create":
                entry = model(name=name, sort_order=sort_order)
                before = None
                db.session.add(entry)
            else:
                entry = db.session.get(model, parse_optional_int(request.form.get("id")) or 0)
                if entry is None:
                    flash("Wpis nie został znaleziony.", "danger")
                    return redirect(request.path)
                before = serialize_model(entry)
                entry.name = name
                entry.sort_order = sort_order
            if with_brand:
                entry.brand_id = brand_id

            try:
                db.session.flush()
            except IntegrityError:
                db.session.rollback()
                flash("Wpis o tej nazwie już istnieje.", "danger")
                return redirect(request.path)

            log_action(entry, action.upper(), before=before, after=serialize_model(entry))
            db.session.commit()
            flash("Wpis został zapisany.", "success")
            return redirect(request.path)

        if action == "delete":
            entry = db.session.get(model, parse_optional_int(request.form.get("id")) or 0)
            if entry is None:
                flash("Wpis nie został znaleziony.", "danger")
                return redirect(request.path)

            if _dictionary_references(entry) or not _commit_delete(entry, serialize_model(entry)):
                flash(IN_USE_MESSAGE, "danger")
                return redirect(request.path)

            flash("Wpis został usunięty.", "success")
            return redirect(request.path)

        flash("Nieprawidłowa operacja.", "danger")
        return redirect(request.path)

    entries = model.query.order_by(model.sort_order.asc(), model.name.asc()).all()
    return render_template(
        "erp/dictionary.html",
        entries=entries,
        page_label=label,
        with_brand=with_brand,
        brands=brands,
    )


@erp_bp.route("/dictionaries/categories", methods=["GET", "POST"])
@login_required
@roles_required("office")
def dictionary_categories():
    return _dictionary_page(Category, "Kategorie")


@erp_bp.route("/dictionaries/brands", methods=["GET", "POST"])
@login_required
@roles_required("office")
def dictionary_brands():
    return _dictionary_page(Brand, "Marki")


@erp_bp.route("/dictionaries/collections", methods=["GET", "POST"])
@login_required
@roles_required("office")
def dictionary_collections():
    return _dictionary_page(Collection, "Kolekcje")


# ----------------------------------------------------------------------
# ATTRIBUTES
# ----------------------------------------------------------------------
def _read_attribute_form(attribute: Attribute) -> str | None:
    code = (form_str("code") or "").lower()
    name = form_str("name")
    attr_type = form_str("type") or "text"

    if not code or not name:
        return "Kod i nazwa atrybutu są wymagane."
    if attr_type not in ATTRIBUTE_TYPES:
        return "Nieprawidłowy typ atrybutu."
    if Attribute.query.filter(Attribute.code == code, Attribute.id != attribute.id).first():
        return "Atrybut o tym kodzie już istnieje."

    attribute.code = code
    attribute.name = name
    attribute.type = attr_type
    attribute.unit = form_str("unit")
    return None


@erp_bp.route("/attributes", methods=["GET", "POST"])
@login_required
@roles_required("office")
def attributes_list():
    """List attributes; POST creates a new one."""
    if request.method == "POST":
        attribute = Attribute()
        error = _read_attribute_form(attribute)
        if error:
            flash(error, "danger")
            return redirect(url_for("erp.attributes_list"))

        db.session.add(attribute)
        db.session.flush()
        log_action(attribute, "CREATE", after=serialize_model(attribute))
        db.session.commit()

        flash("Atrybut został dodany.", "success")
        return redirect(url_for("erp.attribute_edit", attribute_id=attribute.id))

    attributes = Attribute.query.order_by(Attribute.name.asc()).all()
    return render_template("erp/attributes_list.html", attributes=attributes, types=ATTRIBUTE_TYPES)


@erp_bp.route("/attributes/<int:attribute_id>", methods=["GET", "POST"])
@login_required
@roles_required("office")
def attribute_edit(attribute_id: int):
    attribute = Attribute.query.get_or_404(attribute_id)

    if request.method == "POST":
        before = serialize_model(attribute)
        error = _read_attribute_form(attribute)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("erp.attribute_edit", attribute_id=attribute.id))

        db.session.flush()
        log_action(attribute, "UPDATE", before=before, after=serialize_model(attribute))
        db.session.commit()
        flash("Atrybut został zaktualizowany.", "success")
        return redirect(url_for("erp.attribute_edit", attribute_id=attribute.id))

    return render_template("erp/attribute_form.html", attribute=attribute, types=ATTRIBUTE_TYPES)


@erp_bp.route("/attributes/<int:attribute_id>/delete", methods=["POST"])
@login_required
@roles_required("office")
def attribute_delete(attribute_id: int):
    attribute = Attribute.query.get_or_404(attribute_id)
    _commit_delete(attribute, serialize_model(attribute))
    flash("Atrybut został usunięty.", "success")
    return redirect(url_for("erp.attributes_list"))


@erp_bp.route("/attributes/<int:attribute_id>/options", methods=["POST"])
@login_required
@roles_required("office")
def attribute_option_add(attribute_id: int):
    attribute = Attribute.query.get_or_404(attribute_id)
    value = form_str("value")
    back = url_for("erp.attribute_edit", attribute_id=attribute.id)

    if not value:
        flash("Podaj wartość opcji.", "danger")
        return redirect(back)
    if value in {o.value for o in attribute.options}:
        flash("Taka opcja już istnieje.", "warning")
        return redirect(back)

    option = AttributeOption(attribute_id=attribute.id, value=value, sort_order=len(attribute.options))
    db.session.add(option)
    db.session.flush()
    log_action(option, "CREATE", after=serialize_model(option))
    db.session.commit()

    flash("Opcja została dodana.", "success")
    return redirect(back)


@erp_bp.route("/attributes/options/<int:option_id>/delete", methods=["POST"])
@login_required
@roles_required("office")
def attribute_option_delete(option_id: int):
    option = AttributeOption.query.get_or_404(option_id)
    attribute_id = option.attribute_id
    _commit_delete(option, serialize_model(option))
    flash("Opcja została usunięta.", "success")
    return redirect(url_for("erp.attribute_edit", attribute_id=attribute_id))
