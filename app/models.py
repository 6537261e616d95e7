"""
Flooring CRM / ERP – Domain Models

Areas:
- Users & installer rates (roles: admin, office, installer, measurer)
- CRM: Montage (installation job) with notes, tasks, checklist, attachments, quotes
- Finance documents (proforma / advance invoice / final invoice)
- Settlements (installer payout) with lines and advances
- ERP catalog: categories, brands, collections, suppliers, products,
  purchase prices, technical attributes
- AuditLog (system event log)

IMPORTANT:
- UI is never trusted. Any selection must be validated server-side in routes.
- Money is Numeric(12, 2) and handled as Decimal (see app/settlement.py helpers).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .settlement import (
    INSTALLER_EDITABLE_STATUSES,
    LINE_CORRECTION,
    LINE_MATERIAL,
    LINE_SERVICE,
    LOCKED_STATUSES,
    SETTLEMENT_STATUS_LABELS,
    SettlementCalculation,
    SettlementError,
    compute_total,
    make_correction,
    make_line,
    make_override,
    money,
)
from .workflow import MONTAGE_STATUS_LABELS


USER_ROLES = ("admin", "office", "installer", "measurer")
USER_ROLE_LABELS = {
    "admin": "Administrator",
    "office": "Biuro",
    "installer": "Montażysta",
    "measurer": "Pomiarowiec",
}


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user. Installers carry their settlement rates."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    name = db.Column(db.String(150), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)

    roles = db.Column(db.JSON, nullable=False, default=lambda: ["office"])
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Installer rates (PLN per m2 / per running metre)
    rate_classic_click = db.Column(db.Numeric(12, 2), nullable=True)
    rate_classic_glue = db.Column(db.Numeric(12, 2), nullable=True)
    rate_herringbone_click = db.Column(db.Numeric(12, 2), nullable=True)
    rate_herringbone_glue = db.Column(db.Numeric(12, 2), nullable=True)
    rate_skirting = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])

    @property
    def is_admin(self) -> bool:
        return self.has_role("admin")

    @property
    def is_installer(self) -> bool:
        return self.has_role("installer")

    @property
    def is_field_worker(self) -> bool:
        """Installers/measurers without office rights see only their assigned montages."""
        return not (self.is_admin or self.has_role("office")) and (
            self.is_installer or self.has_role("measurer")
        )

    @property
    def display_name(self) -> str:
        return self.name or self.username

    @property
    def rates(self) -> dict:
        """Rate lookup consumed by settlement.calculate_settlement."""
        return {
            "classic_click": self.rate_classic_click,
            "classic_glue": self.rate_classic_glue,
            "herringbone_click": self.rate_herringbone_click,
            "herringbone_glue": self.rate_herringbone_glue,
            "skirting": self.rate_skirting,
        }

    def __repr__(self):
        return f"<User {self.username}>"


# ---------------------------------------------------------------------
# ERP dictionaries
# ---------------------------------------------------------------------
class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False, index=True)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Brand(db.Model):
    __tablename__ = "brands"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False, index=True)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Collection(db.Model):
    __tablename__ = "collections"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id", ondelete="RESTRICT"), nullable=True, index=True)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    brand = db.relationship("Brand", backref=db.backref("collections", lazy=True))

    __table_args__ = (db.UniqueConstraint("brand_id", "name", name="uq_collection_brand_name"),)


# ---------------------------------------------------------------------
# Suppliers & products
# ---------------------------------------------------------------------
class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    nip = db.Column(db.String(10), nullable=True, unique=True, index=True)

    email = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    address = db.Column(db.String(255))
    city = db.Column(db.String(100))
    postal_code = db.Column(db.String(20))
    bank_account = db.Column(db.String(34))
    notes = db.Column(db.Text)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<Supplier {self.name}>"


PRODUCT_UNITS = ("m2", "mb", "szt", "opak")


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(80), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text)
    unit = db.Column(db.String(10), nullable=False, default="m2")
    sale_price = db.Column(db.Numeric(12, 2), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id", ondelete="RESTRICT"), nullable=True, index=True)
    collection_id = db.Column(
        db.Integer, db.ForeignKey("collections.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    collection = db.relationship("Collection", backref=db.backref("products", lazy=True))

    purchase_prices = db.relationship(
        "PurchasePrice",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PurchasePrice.net_price",
    )
    attribute_values = db.relationship(
        "ProductAttributeValue",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    @property
    def preferred_price(self):
        for price in self.purchase_prices or []:
            if price.is_preferred:
                return price
        return None

    @property
    def lowest_purchase_price(self) -> Decimal | None:
        prices = [money(p.net_price) for p in self.purchase_prices or [] if p.net_price is not None]
        return min(prices) if prices else None

    def __repr__(self):
        return f"<Product {self.sku}>"


class PurchasePrice(db.Model):
    """Supplier offer for a product (net purchase price)."""

    __tablename__ = "purchase_prices"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = db.Column(
        db.Integer, db.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    net_price = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="PLN")
    supplier_sku = db.Column(db.String(120))
    is_preferred = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    product = db.relationship("Product", back_populates="purchase_prices")
    supplier = db.relationship("Supplier", backref=db.backref("purchase_prices", lazy=True))

    __table_args__ = (db.UniqueConstraint("product_id", "supplier_id", name="uq_product_supplier"),)


ATTRIBUTE_TYPES = ("text", "number", "select")


class Attribute(db.Model):
    __tablename__ = "attributes"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(80), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="text")
    unit = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    options = db.relationship(
        "AttributeOption",
        back_populates="attribute",
        cascade="all, delete-orphan",
        order_by="AttributeOption.sort_order",
    )


class AttributeOption(db.Model):
    __tablename__ = "attribute_options"

    id = db.Column(db.Integer, primary_key=True)
    attribute_id = db.Column(
        db.Integer, db.ForeignKey("attributes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value = db.Column(db.String(120), nullable=False)
    sort_order = db.Column(db.Integer, default=0)

    attribute = db.relationship("Attribute", back_populates="options")

    __table_args__ = (db.UniqueConstraint("attribute_id", "value", name="uq_attribute_option"),)


class ProductAttributeValue(db.Model):
    __tablename__ = "product_attribute_values"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    attribute_id = db.Column(
        db.Integer, db.ForeignKey("attributes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value = db.Column(db.String(255), nullable=False)

    product = db.relationship("Product", back_populates="attribute_values")
    attribute = db.relationship("Attribute", backref=db.backref("product_values", lazy=True, cascade="all, delete-orphan"))

    __table_args__ = (db.UniqueConstraint("product_id", "attribute_id", name="uq_product_attribute"),)


# ---------------------------------------------------------------------
# CRM: montages
# ---------------------------------------------------------------------
class Montage(db.Model):
    """Installation job tracked through the workflow in app/workflow.py."""

    __tablename__ = "montages"

    id = db.Column(db.Integer, primary_key=True)
    display_id = db.Column(db.String(30), unique=True, index=True)

    client_name = db.Column(db.String(255), nullable=False, index=True)
    contact_email = db.Column(db.String(255))
    contact_phone = db.Column(db.String(50))
    is_company = db.Column(db.Boolean, default=False, nullable=False)
    company_name = db.Column(db.String(255))
    nip = db.Column(db.String(10))

    billing_address = db.Column(db.String(255))
    billing_city = db.Column(db.String(100))
    billing_postal_code = db.Column(db.String(20))
    installation_address = db.Column(db.String(255))
    installation_city = db.Column(db.String(100))
    installation_postal_code = db.Column(db.String(20))

    floor_area = db.Column(db.Numeric(12, 2))
    skirting_length = db.Column(db.Numeric(12, 2))
    installation_method = db.Column(db.String(10))  # click | glue
    floor_pattern = db.Column(db.String(20))  # classic | herringbone

    panel_product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    skirting_product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    status = db.Column(db.String(40), nullable=False, default="lead", index=True)
    material_status = db.Column(db.String(20), nullable=False, default="none")
    installer_status = db.Column(db.String(20), nullable=False, default="none")
    sample_status = db.Column(db.String(20), nullable=False, default="none")

    installer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    measurer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    measurement_date = db.Column(db.DateTime, nullable=True)
    scheduled_installation_at = db.Column(db.DateTime, nullable=True)
    additional_info = db.Column(db.Text)

    deleted_at = db.Column(db.DateTime, nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    installer = db.relationship("User", foreign_keys=[installer_id])
    measurer = db.relationship("User", foreign_keys=[measurer_id])
    panel_product = db.relationship("Product", foreign_keys=[panel_product_id])
    skirting_product = db.relationship("Product", foreign_keys=[skirting_product_id])

    notes = db.relationship(
        "MontageNote", back_populates="montage", cascade="all, delete-orphan", order_by="MontageNote.created_at.desc()"
    )
    attachments = db.relationship(
        "MontageAttachment",
        back_populates="montage",
        cascade="all, delete-orphan",
        order_by="MontageAttachment.created_at.desc()",
    )
    tasks = db.relationship(
        "MontageTask", back_populates="montage", cascade="all, delete-orphan", order_by="MontageTask.id"
    )
    checklist_items = db.relationship(
        "MontageChecklistItem",
        back_populates="montage",
        cascade="all, delete-orphan",
        order_by="MontageChecklistItem.order_index",
    )
    quotes = db.relationship("Quote", back_populates="montage", cascade="all, delete-orphan", order_by="Quote.id")
    documents = db.relationship(
        "FinanceDocument", back_populates="montage", order_by="FinanceDocument.created_at.desc()"
    )
    settlement = db.relationship("Settlement", back_populates="montage", uselist=False, cascade="all, delete-orphan")

    @classmethod
    def active(cls):
        """Query of montages that are not in the trash."""
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def next_display_id(cls, now: datetime | None = None) -> str:
        now = now or datetime.utcnow()
        prefix = f"M/{now.year}/"
        taken = db.session.query(cls.display_id).filter(cls.display_id.like(f"{prefix}%")).all()
        # Highest suffix, not a row count, so gaps never produce a duplicate.
        highest = 0
        for (value,) in taken:
            suffix = value[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:04d}"

    @property
    def status_label(self) -> str:
        return MONTAGE_STATUS_LABELS.get(self.status, self.status)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def installation_summary(self) -> str:
        parts = [self.installation_address, self.installation_postal_code, self.installation_city]
        return ", ".join(p for p in parts if p) or "—"

    def __repr__(self):
        return f"<Montage {self.display_id or self.id} {self.client_name}>"


class MontageNote(db.Model):
    __tablename__ = "montage_notes"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(db.Integer, db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, default=False, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    montage = db.relationship("Montage", back_populates="notes")
    author = db.relationship("User")


ATTACHMENT_TYPES = ("general", "photo", "protocol", "contract", "sketch", "scan")


class MontageAttachment(db.Model):
    __tablename__ = "montage_attachments"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(db.Integer, db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255))
    url = db.Column(db.String(1024), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="general", index=True)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    montage = db.relationship("Montage", back_populates="attachments")
    uploader = db.relationship("User")


class MontageTask(db.Model):
    __tablename__ = "montage_tasks"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(db.Integer, db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    montage = db.relationship("Montage", back_populates="tasks")


class MontageChecklistItem(db.Model):
    __tablename__ = "montage_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(db.Integer, db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True)
    label = db.Column(db.String(255), nullable=False)
    completed = db.Column(db.Boolean, default=False, nullable=False, index=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    montage = db.relationship("Montage", back_populates="checklist_items")


QUOTE_STATUSES = ("draft", "sent", "accepted", "rejected")
QUOTE_STATUS_LABELS = {
    "draft": "Szkic",
    "sent": "Wysłana",
    "accepted": "Zaakceptowana",
    "rejected": "Odrzucona",
}


class Quote(db.Model):
    __tablename__ = "quotes"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(db.Integer, db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, index=True)
    number = db.Column(db.String(50), index=True)
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=True)
    signed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    montage = db.relationship("Montage", back_populates="quotes")


DOCUMENT_TYPES = ("proforma", "advance_invoice", "final_invoice")
DOCUMENT_TYPE_LABELS = {
    "proforma": "Proforma",
    "advance_invoice": "Faktura zaliczkowa",
    "final_invoice": "Faktura końcowa",
}


class FinanceDocument(db.Model):
    """Invoice-like document issued for a montage."""

    __tablename__ = "finance_documents"

    id = db.Column(db.Integer, primary_key=True)
    montage_id = db.Column(db.Integer, db.ForeignKey("montages.id", ondelete="SET NULL"), nullable=True, index=True)
    type = db.Column(db.String(30), nullable=False, default="proforma")
    number = db.Column(db.String(50), index=True)
    pdf_url = db.Column(db.String(1024))
    gross_amount = db.Column(db.Numeric(12, 2))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    montage = db.relationship("Montage", back_populates="documents")


# ---------------------------------------------------------------------
# Settlements
# ---------------------------------------------------------------------
class Settlement(db.Model):
    """
    Installer payout for a montage.

    total_amount = (override_amount or floor_amount) + sum(line.amount)
    Recomputed by recalc_totals() after every edit.
    """

    __tablename__ = "settlements"

    id = db.Column(db.Integer, primary_key=True)

    montage_id = db.Column(
        db.Integer, db.ForeignKey("montages.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    installer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    floor_area = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    floor_rate = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    floor_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    floor_method = db.Column(db.String(10))
    floor_pattern = db.Column(db.String(20))

    override_amount = db.Column(db.Numeric(12, 2), nullable=True)
    override_reason = db.Column(db.String(255), nullable=True)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    note = db.Column(db.Text)

    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    montage = db.relationship("Montage", back_populates="settlement")
    installer = db.relationship("User", foreign_keys=[installer_id])

    lines = db.relationship(
        "SettlementLine",
        back_populates="settlement",
        cascade="all, delete-orphan",
        order_by="SettlementLine.id",
    )
    deducted_advances = db.relationship("Advance", back_populates="settlement")

    # -----------------------------
    # Views over lines
    # -----------------------------
    def _lines_of(self, kind: str) -> list:
        return [line for line in self.lines if line.kind == kind]

    @property
    def services(self) -> list:
        return self._lines_of(LINE_SERVICE)

    @property
    def materials(self) -> list:
        return self._lines_of(LINE_MATERIAL)

    @property
    def corrections(self) -> list:
        return self._lines_of(LINE_CORRECTION)

    @property
    def has_override(self) -> bool:
        return self.override_amount is not None

    @property
    def base_amount(self) -> Decimal:
        return money(self.override_amount) if self.has_override else money(self.floor_amount)

    @property
    def status_label(self) -> str:
        return SETTLEMENT_STATUS_LABELS.get(self.status, self.status)

    @property
    def deducted_total(self) -> Decimal:
        return money(sum((money(a.amount) for a in self.deducted_advances), Decimal("0.00")))

    @property
    def payable_amount(self) -> Decimal:
        return money(money(self.total_amount) - self.deducted_total)

    # -----------------------------
    # Permissions
    # -----------------------------
    def is_read_only_for(self, user) -> bool:
        if getattr(user, "is_admin", False):
            return False
        return (self.status or "draft") in LOCKED_STATUSES

    def can_be_edited_by(self, user) -> bool:
        if getattr(user, "is_admin", False):
            return True
        return (
            getattr(user, "id", None) is not None
            and user.id == self.installer_id
            and (self.status or "draft") in INSTALLER_EDITABLE_STATUSES
        )

    # -----------------------------
    # Arithmetic
    # -----------------------------
    def recalc_totals(self) -> Decimal:
        self.total_amount = compute_total(self.floor_amount, self.override_amount, self.lines)
        return self.total_amount

    def _apply_floor(self, calc: SettlementCalculation) -> None:
        self.floor_area = calc.floor.area
        self.floor_rate = calc.floor.rate
        self.floor_amount = calc.floor.amount
        self.floor_method = calc.floor.method
        self.floor_pattern = calc.floor.pattern

    def _append_calc_lines(self, calc: SettlementCalculation, system_only: bool) -> None:
        for item in calc.lines:
            if system_only and not item.is_system:
                continue
            self.lines.append(
                SettlementLine(
                    kind=item.kind,
                    description=item.description,
                    quantity=item.quantity,
                    rate=item.rate,
                    amount=item.amount,
                    is_system=item.is_system,
                )
            )

    def apply_calculation(self, calc: SettlementCalculation) -> None:
        """Populate a new settlement from a calculator preview (including any user lines and override)."""
        self._apply_floor(calc)
        self._append_calc_lines(calc, system_only=False)
        if calc.override:
            self.override_amount = calc.override.amount
            self.override_reason = calc.override.reason
        self.recalc_totals()

    def refresh_draft(self, calc: SettlementCalculation) -> None:
        """
        Re-run the calculator on a draft.

        Calculator-derived data (floor block, system lines) is replaced;
        user-entered override, lines and note are preserved.
        """
        if (self.status or "draft") != "draft":
            raise SettlementError("Przeliczyć można tylko rozliczenie w statusie szkicu.")
        self._apply_floor(calc)
        for line in [line for line in self.lines if line.is_system]:
            self.lines.remove(line)
        self._append_calc_lines(calc, system_only=True)
        self.recalc_totals()

    def add_line(self, kind: str, description: str, quantity, rate) -> "SettlementLine":
        item = make_line(kind, description, quantity, rate)
        line = SettlementLine(
            kind=item.kind, description=item.description, quantity=item.quantity, rate=item.rate, amount=item.amount
        )
        self.lines.append(line)
        self.recalc_totals()
        return line

    def add_correction(self, description: str, amount) -> "SettlementLine":
        item = make_correction(description, amount)
        line = SettlementLine(kind=item.kind, description=item.description, amount=item.amount)
        self.lines.append(line)
        self.recalc_totals()
        return line

    def remove_line(self, line: "SettlementLine") -> None:
        if line not in self.lines:
            raise SettlementError("Pozycja nie należy do tego rozliczenia.")
        self.lines.remove(line)
        self.recalc_totals()

    def apply_override(self, amount, reason: str) -> None:
        override = make_override(amount, reason)
        self.override_amount = override.amount
        self.override_reason = override.reason
        self.recalc_totals()

    def clear_override(self) -> None:
        self.override_amount = None
        self.override_reason = None
        self.recalc_totals()


class SettlementLine(db.Model):
    __tablename__ = "settlement_lines"

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(
        db.Integer, db.ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False, index=True
    )

    kind = db.Column(db.String(20), nullable=False, index=True)  # service | material | correction
    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=True)
    rate = db.Column(db.Numeric(12, 2), nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    is_system = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    settlement = db.relationship("Settlement", back_populates="lines")


ADVANCE_STATUSES = ("pending", "paid", "deducted")
ADVANCE_STATUS_LABELS = {
    "pending": "Oczekuje",
    "paid": "Wypłacona",
    "deducted": "Potrącona",
}


class Advance(db.Model):
    """Cash advance for an installer, deducted from a later settlement."""

    __tablename__ = "advances"

    id = db.Column(db.Integer, primary_key=True)
    installer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    settlement_id = db.Column(
        db.Integer, db.ForeignKey("settlements.id", ondelete="SET NULL"), nullable=True, index=True
    )

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    request_date = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    paid_date = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    installer = db.relationship("User", backref=db.backref("advances", lazy=True))
    settlement = db.relationship("Settlement", back_populates="deducted_advances")

    @property
    def status_label(self) -> str:
        return ADVANCE_STATUS_LABELS.get(self.status, self.status)


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """System event log: who changed which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(40), nullable=False, index=True)
    message = db.Column(db.String(500), nullable=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
