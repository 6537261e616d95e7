"""
app/workflow.py

Montage lifecycle.

Key rules:
- The lifecycle is a fixed ordered list; the current stage is the index of `status`.
- Moving forward requires the preconditions of every stage being entered.
- Moving backward (manual re-selection of an earlier status) is always allowed.
- There are no automatic or timer-driven transitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

MONTAGE_STATUSES = (
    "lead",
    "before_measurement",
    "before_first_payment",
    "before_installation",
    "before_skirting_installation",
    "before_final_invoice",
    "completed",
)

MONTAGE_STATUS_LABELS = {
    "lead": "Lead",
    "before_measurement": "Przed pomiarem",
    "before_first_payment": "Przed pierwszą wpłatą",
    "before_installation": "Przed montażem",
    "before_skirting_installation": "Przed montażem listew",
    "before_final_invoice": "Przed fakturą końcową",
    "completed": "Zakończony",
}

MATERIAL_STATUSES = ("none", "ordered", "in_stock", "delivered")
MATERIAL_STATUS_LABELS = {
    "none": "Brak",
    "ordered": "Zamówione",
    "in_stock": "Na magazynie",
    "delivered": "Dostarczone",
}

INSTALLER_STATUSES = ("none", "informed", "confirmed")
INSTALLER_STATUS_LABELS = {
    "none": "Brak",
    "informed": "Poinformowany",
    "confirmed": "Potwierdził",
}

SAMPLE_STATUSES = ("none", "requested", "sent", "delivered", "verified")
SAMPLE_STATUS_LABELS = {
    "none": "Nie dotyczy",
    "requested": "Zamówione",
    "sent": "Wysłane",
    "delivered": "Dostarczone",
    "verified": "Zweryfikowane",
}

PRECONDITION_SAMPLES = "samples_verified"
PRECONDITION_INSTALLER = "installer_assigned"

PRECONDITION_LABELS = {
    PRECONDITION_SAMPLES: "Próbki muszą zostać zweryfikowane przez klienta.",
    PRECONDITION_INSTALLER: "Do montażu musi być przypisany montażysta.",
}

# Preconditions required to ENTER a stage.
STAGE_REQUIREMENTS = {
    "before_first_payment": (PRECONDITION_SAMPLES,),
    "before_installation": (PRECONDITION_INSTALLER,),
    "before_skirting_installation": (PRECONDITION_INSTALLER,),
    "before_final_invoice": (PRECONDITION_INSTALLER,),
    "completed": (PRECONDITION_INSTALLER,),
}


class WorkflowError(ValueError):
    """Invalid status or a transition whose preconditions are not met."""


@dataclass
class WorkflowAction:
    """Model of a "move to stage" button."""

    target: str
    label: str
    disabled: bool = False
    reasons: list = field(default_factory=list)


def stage_index(status: str) -> int:
    try:
        return MONTAGE_STATUSES.index(status)
    except ValueError:
        raise WorkflowError(f"Nieznany status montażu: {status!r}") from None


def status_label(status: Optional[str]) -> str:
    return MONTAGE_STATUS_LABELS.get(status or "", status or "—")


def next_status(status: str) -> Optional[str]:
    idx = stage_index(status)
    if idx + 1 < len(MONTAGE_STATUSES):
        return MONTAGE_STATUSES[idx + 1]
    return None


def precondition_met(montage: Any, key: str) -> bool:
    if key == PRECONDITION_SAMPLES:
        return (getattr(montage, "sample_status", None) or "none") in ("none", "verified")
    if key == PRECONDITION_INSTALLER:
        return getattr(montage, "installer_id", None) is not None
    raise WorkflowError(f"Nieznany warunek: {key!r}")


def blocking_reasons(montage: Any, target: str) -> list:
    """Unmet preconditions (as messages) for moving `montage` to `target`."""
    current_idx = stage_index(montage.status)
    target_idx = stage_index(target)
    if target_idx <= current_idx:
        return []

    reasons = []
    for status in MONTAGE_STATUSES[current_idx + 1:target_idx + 1]:
        for key in STAGE_REQUIREMENTS.get(status, ()):
            message = PRECONDITION_LABELS[key]
            if not precondition_met(montage, key) and message not in reasons:
                reasons.append(message)
    return reasons


def check_transition(montage: Any, target: str) -> str:
    """Validate a status change; returns the target or raises WorkflowError."""
    target = (target or "").strip()
    stage_index(target)
    reasons = blocking_reasons(montage, target)
    if reasons:
        raise WorkflowError(" ".join(reasons))
    return target


def available_actions(montage: Any) -> list:
    """
    Buttons for the workflow tab.

    The next stage is always listed (disabled with reasons when preconditions
    are unmet); every earlier stage is offered as an enabled rollback target.
    """
    actions = []
    upcoming = next_status(montage.status)
    if upcoming:
        reasons = blocking_reasons(montage, upcoming)
        actions.append(
            WorkflowAction(
                target=upcoming,
                label=f"Przejdź do: {status_label(upcoming)}",
                disabled=bool(reasons),
                reasons=reasons,
            )
        )
    for status in reversed(MONTAGE_STATUSES[: stage_index(montage.status)]):
        actions.append(WorkflowAction(target=status, label=f"Cofnij do: {status_label(status)}"))
    return actions


def progress(montage: Any) -> list:
    """Stage list for the process map: (status, label, state) with state in done/current/todo."""
    current = stage_index(montage.status)
    out = []
    for idx, status in enumerate(MONTAGE_STATUSES):
        state = "done" if idx < current else ("current" if idx == current else "todo")
        out.append((status, MONTAGE_STATUS_LABELS[status], state))
    return out
