"""
app/seed.py

Seed default ERP dictionaries and technical attributes.

Rules:
- Safe to run multiple times (idempotent): rows are matched by name / code.
- Products and suppliers are not seeded; they are first-class business data.

Also holds the default montage checklist that is attached to a lead when it
is converted into a montage.
"""

from __future__ import annotations

from .extensions import db
from .models import Attribute, AttributeOption, Brand, Category, MontageChecklistItem


DEFAULT_CATEGORIES = [
    "Panele podłogowe",
    "Deski warstwowe",
    "Deski lite",
    "Podłogi winylowe",
    "Listwy przypodłogowe",
    "Podkłady",
    "Chemia i akcesoria",
]

DEFAULT_BRANDS = [
    "Barlinek",
    "Quick-Step",
    "Egger",
    "Arbiton",
]

DEFAULT_ATTRIBUTES = [
    # code, name, type, unit, options
    ("thickness", "Grubość", "number", "mm", []),
    ("abrasion_class", "Klasa ścieralności", "select", None, ["AC3", "AC4", "AC5", "AC6"]),
    ("bevel", "Fazowanie", "select", None, ["Brak", "2V", "4V"]),
    ("pattern", "Wzór ułożenia", "select", None, ["Klasyczny", "Jodełka", "Jodełka francuska"]),
    ("pack_area", "Metraż w opakowaniu", "number", "m2", []),
    ("color", "Kolor", "text", None, []),
]

DEFAULT_MONTAGE_CHECKLIST = [
    "Umowa podpisana",
    "Zaliczka zaksięgowana",
    "Materiał dostarczony na budowę",
    "Protokół odbioru podpisany",
    "Zdjęcia po montażu dodane",
    "Faktura końcowa wystawiona",
]


def seed_dictionaries() -> dict:
    """
    Create default categories, brands and attributes if they don't exist.

    Returns counts of newly created rows per dictionary.
    """
    created = {"categories": 0, "brands": 0, "attributes": 0, "options": 0}

    for idx, name in enumerate(DEFAULT_CATEGORIES):
        if Category.query.filter_by(name=name).first():
            continue
        db.session.add(Category(name=name, sort_order=idx))
        created["categories"] += 1

    for idx, name in enumerate(DEFAULT_BRANDS):
        if Brand.query.filter_by(name=name).first():
            continue
        db.session.add(Brand(name=name, sort_order=idx))
        created["brands"] += 1

    db.session.flush()

    for code, name, attr_type, unit, options in DEFAULT_ATTRIBUTES:
        attribute = Attribute.query.filter_by(code=code).first()
        if not attribute:
            attribute = Attribute(code=code, name=name, type=attr_type, unit=unit)
            db.session.add(attribute)
            db.session.flush()
            created["attributes"] += 1

        existing = {o.value for o in attribute.options}
        for idx, value in enumerate(options):
            if value in existing:
                continue
            db.session.add(AttributeOption(attribute_id=attribute.id, value=value, sort_order=idx))
            created["options"] += 1

    db.session.commit()
    return created


def add_default_checklist(montage) -> int:
    """Attach the default checklist to a montage that has none yet (caller commits)."""
    if montage.checklist_items:
        return 0
    for idx, label in enumerate(DEFAULT_MONTAGE_CHECKLIST):
        montage.checklist_items.append(MontageChecklistItem(label=label, order_index=idx))
    return len(DEFAULT_MONTAGE_CHECKLIST)
