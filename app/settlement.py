"""
app/settlement.py

Installer settlement arithmetic.

A settlement total is always:

    base + sum(services) + sum(materials) + sum(corrections)

where base is the manual override amount when one is set, otherwise the
computed floor amount (area x rate). The computed floor amount is kept next to
the override for display and audit.

This module is pure (no Flask, no database) so the rules can be reused by the
Settlement model, the preview dialog and the tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
# Largest value a Numeric(12, 2) column holds.
MAX_AMOUNT = Decimal("9999999999.99")

SETTLEMENT_STATUSES = ("draft", "pending", "approved", "paid")
SETTLEMENT_STATUS_LABELS = {
    "draft": "Szkic",
    "pending": "Oczekuje",
    "approved": "Zatwierdzone",
    "paid": "Wypłacone",
}
# Approved/paid settlements are read-only to non-admins and never recalculated.
LOCKED_STATUSES = frozenset({"approved", "paid"})
# Installers may edit their own settlement only while it is still open.
INSTALLER_EDITABLE_STATUSES = frozenset({"draft", "pending"})

LINE_SERVICE = "service"
LINE_MATERIAL = "material"
LINE_CORRECTION = "correction"
LINE_KINDS = (LINE_SERVICE, LINE_MATERIAL, LINE_CORRECTION)
LINE_KIND_LABELS = {
    LINE_SERVICE: "Usługa dodatkowa",
    LINE_MATERIAL: "Materiał dodatkowy",
    LINE_CORRECTION: "Korekta",
}

INSTALLATION_METHODS = ("click", "glue")
FLOOR_PATTERNS = ("classic", "herringbone")
METHOD_LABELS = {"click": "Click", "glue": "Klej"}
PATTERN_LABELS = {"classic": "Klasycznie", "herringbone": "Jodełka"}

SKIRTING_LINE_DESCRIPTION = "Montaż listew"

RATE_KEYS = ("classic_click", "classic_glue", "herringbone_click", "herringbone_glue", "skirting")


class SettlementError(ValueError):
    """Invalid settlement input or a forbidden settlement operation."""


# ---------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------
def to_decimal(value: Any) -> Decimal:
    """Convert Numeric/float/str/None to Decimal; None and '' become 0.00."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        raw = str(value).strip().replace(",", ".")
        if raw == "":
            return ZERO
        try:
            result = Decimal(raw)
        except InvalidOperation as exc:
            raise SettlementError(f"Nieprawidłowa wartość liczbowa: {value!r}") from exc
    if not result.is_finite():
        raise SettlementError(f"Nieprawidłowa wartość liczbowa: {value!r}")
    return result


def money(value: Any) -> Decimal:
    """Round to grosze; values that do not fit a money column raise SettlementError."""
    amount = to_decimal(value)
    if abs(amount) > MAX_AMOUNT:
        raise SettlementError("Kwota jest zbyt duża.")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise SettlementError(f"Nieprawidłowa wartość liczbowa: {value!r}") from exc


def line_amount(quantity: Any, rate: Any) -> Decimal:
    """quantity x rate, rounded to grosze."""
    return money(to_decimal(quantity) * to_decimal(rate))


# ---------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------
@dataclass
class FloorAmount:
    area: Decimal
    rate: Decimal
    amount: Decimal
    method: str
    pattern: str


@dataclass
class LineItem:
    kind: str
    description: str
    quantity: Optional[Decimal]
    rate: Optional[Decimal]
    amount: Decimal
    is_system: bool = False


@dataclass
class Override:
    amount: Decimal
    reason: str


@dataclass
class SettlementCalculation:
    """Preview of a settlement before it is persisted."""

    floor: FloorAmount
    services: list = field(default_factory=list)
    materials: list = field(default_factory=list)
    corrections: list = field(default_factory=list)
    override: Optional[Override] = None
    warnings: list = field(default_factory=list)

    @property
    def lines(self) -> list:
        return [*self.services, *self.materials, *self.corrections]

    @property
    def base_amount(self) -> Decimal:
        return self.override.amount if self.override else self.floor.amount

    @property
    def total(self) -> Decimal:
        return compute_total(self.floor.amount, self.override.amount if self.override else None, self.lines)

    def add_line(self, line: LineItem) -> None:
        {
            LINE_SERVICE: self.services,
            LINE_MATERIAL: self.materials,
            LINE_CORRECTION: self.corrections,
        }[line.kind].append(line)

    def remove_line(self, line: LineItem) -> None:
        for group in (self.services, self.materials, self.corrections):
            if line in group:
                group.remove(line)
                return
        raise SettlementError("Pozycja nie należy do rozliczenia.")


# ---------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------
def normalize_method(method: Optional[str]) -> str:
    return method if method in INSTALLATION_METHODS else "click"


def normalize_pattern(pattern: Optional[str]) -> str:
    return pattern if pattern in FLOOR_PATTERNS else "classic"


def resolve_floor_rate(rates: Mapping[str, Any], method: Optional[str], pattern: Optional[str]) -> Decimal:
    """
    Pick the installer's per-m2 rate for the installation method and floor pattern.

    Missing rates resolve to 0.00 (reported as a warning by calculate_settlement).
    """
    key = f"{normalize_pattern(pattern)}_{normalize_method(method)}"
    return money(rates.get(key))


def compute_total(floor_amount: Any, override_amount: Any, lines: Iterable[Any]) -> Decimal:
    """
    Settlement total: (override if set else floor) + every line amount.

    `lines` is any iterable of objects exposing `.amount` (LineItem or SettlementLine).
    """
    base = money(override_amount) if override_amount is not None else money(floor_amount)
    total = base
    for line in lines:
        total += money(line.amount)
    return money(total)


def rate_warnings(area: Decimal, floor_rate: Decimal, skirting_length: Decimal, skirting_rate: Decimal) -> list:
    warnings = []
    if area <= ZERO:
        warnings.append("Brak metrażu podłogi – kwota za podłogę wynosi 0.")
    elif floor_rate == ZERO:
        warnings.append("Montażysta nie ma skonfigurowanej stawki za podłogę dla tej metody montażu.")
    if skirting_length > ZERO and skirting_rate == ZERO:
        warnings.append("Montażysta nie ma skonfigurowanej stawki za listwy.")
    return warnings


def calculate_settlement(
    area: Any,
    skirting_length: Any,
    method: Optional[str],
    pattern: Optional[str],
    rates: Mapping[str, Any],
) -> SettlementCalculation:
    """
    Compute a fresh settlement from measurement data and installer rates.

    Skirting installation is emitted as a system service line so that the
    total keeps the four-group shape.
    """
    area_d = money(area)
    if area_d < ZERO:
        raise SettlementError("Metraż nie może być ujemny.")
    skirting_d = money(skirting_length)
    if skirting_d < ZERO:
        raise SettlementError("Długość listew nie może być ujemna.")

    floor_rate = resolve_floor_rate(rates, method, pattern)
    skirting_rate = money(rates.get("skirting"))

    calc = SettlementCalculation(
        floor=FloorAmount(
            area=area_d,
            rate=floor_rate,
            amount=line_amount(area_d, floor_rate),
            method=normalize_method(method),
            pattern=normalize_pattern(pattern),
        ),
        warnings=rate_warnings(area_d, floor_rate, skirting_d, skirting_rate),
    )

    if skirting_d > ZERO:
        calc.services.append(
            LineItem(
                kind=LINE_SERVICE,
                description=SKIRTING_LINE_DESCRIPTION,
                quantity=skirting_d,
                rate=skirting_rate,
                amount=line_amount(skirting_d, skirting_rate),
                is_system=True,
            )
        )
    return calc


def make_line(kind: str, description: str, quantity: Any, rate: Any) -> LineItem:
    """Validated service/material line (quantity x rate)."""
    if kind not in (LINE_SERVICE, LINE_MATERIAL):
        raise SettlementError("Nieznany typ pozycji rozliczenia.")
    description = (description or "").strip()
    if not description:
        raise SettlementError("Opis pozycji jest wymagany.")
    qty = money(quantity)
    if qty <= ZERO:
        raise SettlementError("Ilość musi być większa od zera.")
    rate_d = money(rate)
    if rate_d < ZERO:
        raise SettlementError("Stawka nie może być ujemna.")
    return LineItem(kind=kind, description=description, quantity=qty, rate=rate_d, amount=line_amount(qty, rate_d))


def make_correction(description: str, amount: Any) -> LineItem:
    """Signed free-form adjustment."""
    description = (description or "").strip()
    if not description:
        raise SettlementError("Opis korekty jest wymagany.")
    amount_d = money(amount)
    if amount_d == ZERO:
        raise SettlementError("Kwota korekty nie może wynosić 0.")
    return LineItem(kind=LINE_CORRECTION, description=description, quantity=None, rate=None, amount=amount_d)


def make_override(amount: Any, reason: str) -> Override:
    """Manual replacement of the computed floor amount; a reason is mandatory."""
    reason = (reason or "").strip()
    if not reason:
        raise SettlementError("Podaj powód nadpisania kwoty.")
    if amount is None or str(amount).strip() == "":
        raise SettlementError("Podaj kwotę nadpisania.")
    amount_d = money(amount)
    if amount_d < ZERO:
        raise SettlementError("Kwota nadpisania nie może być ujemna.")
    return Override(amount=amount_d, reason=reason)


def validate_status(status: str) -> str:
    status = (status or "").strip()
    if status not in SETTLEMENT_STATUSES:
        raise SettlementError("Nieprawidłowy status rozliczenia.")
    return status


def payable_after_advances(total: Any, advance_amounts: Iterable[Any]) -> Decimal:
    """Amount actually paid out once the selected advances are deducted."""
    deducted = sum((money(a) for a in advance_amounts), ZERO)
    return money(money(total) - deducted)
