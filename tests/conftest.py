from __future__ import annotations

import io
from datetime import date

import pytest
from PIL import Image

from models import InvoiceInput


class RecordingCanvas:
    """Stands in for a reportlab canvas and remembers every drawing call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))

        return record

    def texts(self, method: str = "drawString") -> list[str]:
        return [args[2] for name, args, _ in self.calls if name == method]

    def called(self, method: str) -> list[tuple]:
        return [args for name, args, _ in self.calls if name == method]


@pytest.fixture
def recording_canvas() -> RecordingCanvas:
    return RecordingCanvas()


@pytest.fixture
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 4), (102, 126, 234)).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def invoice() -> InvoiceInput:
    return InvoiceInput(
        business_name="Acme Studio",
        currency="$",
        invoice_number="INV-7",
        client_name="Jane Doe",
        invoice_date=date(2024, 1, 10),
        due_date=date(2024, 2, 9),
        service_description="Website redesign",
        quantity=3.0,
        rate=150.0,
        tax_rate=8.0,
    )


@pytest.fixture
def valid_form() -> dict:
    return {
        "business_name": "Acme Studio",
        "currency": "$",
        "invoice_number": "INV-7",
        "client_name": "Jane Doe",
        "invoice_date": "2024-01-10",
        "due_date": "2024-02-09",
        "service_description": "Website redesign",
        "quantity": "3",
        "rate": "150.00",
        "tax_rate": "8",
        "additional_notes": "Net 30",
    }


@pytest.fixture
def app(tmp_path):
    from app import create_app

    flask_app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{(tmp_path / 'test.db').as_posix()}",
        "LOG_LEVEL": "DEBUG",
    })
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
