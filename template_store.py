from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import select

from models import LogoImage, StoredSlot, Template

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "invoiceTemplate"


class TemplateStoreError(Exception):
    pass


# -----------------------------
# Slot stores
# -----------------------------
class SlotStore(Protocol):
    def get(self, slot: str) -> Optional[str]: ...

    def set(self, slot: str, value: str) -> None: ...


class MemorySlotStore:
    def __init__(self):
        self._slots: dict[str, str] = {}

    def get(self, slot: str) -> Optional[str]:
        return self._slots.get(slot)

    def set(self, slot: str, value: str) -> None:
        self._slots[slot] = value


class SqlSlotStore:
    """Slots kept in the stored_slots table, one row per slot name."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get(self, slot: str) -> Optional[str]:
        with self._session_factory() as s:
            row = s.execute(select(StoredSlot).where(StoredSlot.slot == slot)).scalar_one_or_none()
            return row.value if row else None

    def set(self, slot: str, value: str) -> None:
        with self._session_factory() as s:
            row = s.execute(select(StoredSlot).where(StoredSlot.slot == slot)).scalar_one_or_none()
            if row is None:
                s.add(StoredSlot(slot=slot, value=value))
            else:
                row.value = value
            s.commit()


# -----------------------------
# Template (de)serialization
# -----------------------------
def template_to_json(t: Template) -> str:
    return json.dumps({
        "businessName": t.business_name,
        "currency": t.currency,
        "taxRate": t.tax_rate if math.isfinite(t.tax_rate) else 0,
        "additionalNotes": t.additional_notes,
        "logoDataUrl": t.logo.to_data_url() if t.logo else None,
        "savedAt": t.saved_at.isoformat() if t.saved_at else None,
    }, allow_nan=False)


def _tax_rate(raw) -> float:
    # Older saves stored the raw input string ("8"); blank means unset.
    if raw is None or raw == "" or isinstance(raw, bool):
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def _saved_at(raw) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def _logo(raw) -> Optional[LogoImage]:
    if not raw:
        return None
    try:
        return LogoImage.from_data_url(raw)
    except ValueError as exc:
        logger.warning("Stored template logo ignored: %s", exc)
        return None


def template_from_dict(obj: dict) -> Template:
    return Template(
        business_name=obj.get("businessName") or "",
        currency=obj.get("currency") or "$",
        tax_rate=_tax_rate(obj.get("taxRate")),
        additional_notes=obj.get("additionalNotes") or "",
        logo=_logo(obj.get("logoDataUrl")),
        saved_at=_saved_at(obj.get("savedAt")),
    )


# -----------------------------
# Store
# -----------------------------
class TemplateStore:
    def __init__(self, slots: SlotStore, slot: str = DEFAULT_SLOT):
        self.slots = slots
        self.slot = slot

    def save(self, template: Template) -> None:
        """Overwrites the slot. Failures are logged and raised as TemplateStoreError."""
        try:
            self.slots.set(self.slot, template_to_json(template))
        except Exception as exc:
            logger.exception("Error saving template to slot %r", self.slot)
            raise TemplateStoreError(str(exc)) from exc
        logger.info("Template saved to slot %r", self.slot)

    def load(self) -> Template:
        """
        Returns the saved template, or an all-defaults Template when nothing
        usable is stored. Never raises.
        """
        try:
            raw = self.slots.get(self.slot)
            if not raw:
                return Template()
            obj = json.loads(raw)
            if not isinstance(obj, dict):
                raise ValueError(f"expected a JSON object, got {type(obj).__name__}")
            return template_from_dict(obj)
        except Exception as exc:
            logger.warning("Error loading template from slot %r: %s", self.slot, exc)
            return Template()
