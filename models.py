from __future__ import annotations

import base64
import binascii
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

from sqlalchemy import (
    create_engine,
    String,
    Integer,
    Text,
    DateTime,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    sessionmaker,
)

logger = logging.getLogger(__name__)


# -----------------------------
# SQLAlchemy base
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Tables
# -----------------------------
class InvoiceSequence(Base):
    """
    Stores the last used sequence number per year.
    Used to suggest invoice numbers like: INV-YYYY######.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = (UniqueConstraint("year", name="uq_invoice_sequences_year"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class StoredSlot(Base):
    """
    Named key-value slot. The saved invoice template lives in one of these
    as a JSON document.
    """
    __tablename__ = "stored_slots"
    __table_args__ = (UniqueConstraint("slot", name="uq_stored_slots_slot"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slot: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# -----------------------------
# Form values
# -----------------------------
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.*)$", re.DOTALL)
_NUMBER_PREFIX = re.compile(r"\s*([+-]?(?:Infinity|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?))")


@dataclass(frozen=True)
class LogoImage:
    data: bytes
    mime_type: str

    def to_data_url(self) -> str:
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"

    @classmethod
    def from_data_url(cls, data_url: str) -> "LogoImage":
        m = _DATA_URL_RE.match((data_url or "").strip())
        if not m:
            raise ValueError("Not a base64 data URL")
        try:
            data = base64.b64decode(m.group("payload"), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 payload in data URL: {exc}") from exc
        return cls(data=data, mime_type=m.group("mime"))


def _to_float(s) -> float:
    """
    Lenient number parsing: reads the longest leading decimal number and
    ignores whatever follows ("3abc" -> 3.0, "1_000" -> 1.0). No leading
    number at all gives NaN.
    """
    if isinstance(s, bool):
        return math.nan
    if isinstance(s, (int, float)):
        return float(s)
    m = _NUMBER_PREFIX.match(s if isinstance(s, str) else "")
    if not m:
        return math.nan
    return float(m.group(1))


def _to_date(s) -> Optional[date]:
    if isinstance(s, date):
        return s
    try:
        return date.fromisoformat((s or "").strip())
    except (TypeError, ValueError):
        return None


def _to_bool(v) -> bool:
    if isinstance(v, bool):
        return v
    return str(v or "").strip().lower() in {"1", "on", "true", "yes"}


def _logo_or_none(data_url) -> Optional[LogoImage]:
    if not (data_url or "").strip():
        return None
    try:
        return LogoImage.from_data_url(data_url)
    except ValueError as exc:
        logger.warning("Ignoring malformed logo data URL: %s", exc)
        return None


@dataclass
class InvoiceInput:
    """
    Everything needed to render one invoice. Built fresh for every request;
    the active logo travels inside the value.
    """
    business_name: str = ""
    currency: str = "$"
    invoice_number: str = ""
    client_name: str = ""
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    service_description: str = ""
    quantity: float = math.nan
    rate: float = math.nan
    tax_rate: float = math.nan
    additional_notes: str = ""
    watermark: bool = False
    logo: Optional[LogoImage] = None

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "InvoiceInput":
        return cls(
            business_name=str(form.get("business_name") or ""),
            currency=str(form.get("currency") or "$"),
            invoice_number=str(form.get("invoice_number") or ""),
            client_name=str(form.get("client_name") or ""),
            invoice_date=_to_date(form.get("invoice_date")),
            due_date=_to_date(form.get("due_date")),
            service_description=str(form.get("service_description") or ""),
            quantity=_to_float(form.get("quantity")),
            rate=_to_float(form.get("rate")),
            tax_rate=_to_float(form.get("tax_rate")),
            additional_notes=str(form.get("additional_notes") or ""),
            watermark=_to_bool(form.get("watermark")),
            logo=_logo_or_none(form.get("logo_data_url")),
        )

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "InvoiceInput":
        """Build from a JSON object using the camelCase keys of the saved template."""
        return cls.from_form({
            "business_name": obj.get("businessName"),
            "currency": obj.get("currency"),
            "invoice_number": obj.get("invoiceNumber"),
            "client_name": obj.get("clientName"),
            "invoice_date": obj.get("invoiceDate"),
            "due_date": obj.get("dueDate"),
            "service_description": obj.get("serviceDescription"),
            "quantity": obj.get("quantity"),
            "rate": obj.get("rate"),
            "tax_rate": obj.get("taxRate"),
            "additional_notes": obj.get("additionalNotes"),
            "watermark": obj.get("watermark"),
            "logo_data_url": obj.get("logoDataUrl"),
        })


@dataclass
class Template:
    """Reusable subset of the form saved between invoices."""
    business_name: str = ""
    currency: str = "$"
    tax_rate: float = 0.0
    additional_notes: str = ""
    logo: Optional[LogoImage] = None
    saved_at: Optional[datetime] = None

    @classmethod
    def from_invoice(cls, inv: InvoiceInput, saved_at: Optional[datetime] = None) -> "Template":
        return cls(
            business_name=inv.business_name,
            currency=inv.currency,
            # Blank or non-finite tax rates are saved as the default 0.
            tax_rate=inv.tax_rate if math.isfinite(inv.tax_rate) else 0.0,
            additional_notes=inv.additional_notes,
            logo=inv.logo,
            saved_at=saved_at or datetime.now(timezone.utc),
        )


# -----------------------------
# Engine / Session factory
# -----------------------------
def ensure_sqlite_dir(db_url: str) -> None:
    # SQLite will not create the parent folder (instance/) on its own
    if db_url.startswith("sqlite:///"):
        Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)


def make_engine(db_url: str, echo: bool = False):
    """
    Create SQLAlchemy engine.
    Note: SQLite path must exist; call ensure_sqlite_dir first.
    """
    return create_engine(db_url, echo=echo, future=True)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


# -----------------------------
# Invoice number generator
# -----------------------------
def peek_invoice_number(session, year: int, seq_width: int = 6) -> str:
    """Number the next claim would hand out, without reserving it."""
    last = session.execute(
        select(InvoiceSequence.last_seq).where(InvoiceSequence.year == year)
    ).scalar_one_or_none()
    return f"INV-{year}{(last or 0) + 1:0{seq_width}d}"


def next_invoice_number(session, year: int, seq_width: int = 6) -> str:
    """
    Reserves and returns the next invoice number like INV-YYYY######.
    The caller commits.
    """
    seq_row = session.execute(
        select(InvoiceSequence).where(InvoiceSequence.year == year)
    ).scalar_one_or_none()

    if seq_row is None:
        seq_row = InvoiceSequence(year=year, last_seq=0)
        session.add(seq_row)
        session.flush()

    seq_row.last_seq += 1
    session.flush()

    return f"INV-{year}{seq_row.last_seq:0{seq_width}d}"
