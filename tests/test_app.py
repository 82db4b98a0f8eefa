from __future__ import annotations

import io
import json
from datetime import date

import pytest

import app as webapp
from models import LogoImage, Template
from template_store import TemplateStore

MIB = 1024 * 1024


class FailingSlots:
    def get(self, slot):
        return None

    def set(self, slot, value):
        raise OSError("quota exceeded")


def test_index_renders_fresh_form(client) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Invoice Generator" in resp.data
    assert b"INV-" in resp.data


def _suggested_number(n: int) -> bytes:
    return f"INV-{date.today().year}{n:06d}".encode()


def test_index_suggests_the_same_number_until_it_is_used(client) -> None:
    first = client.get("/").data
    second = client.get("/").data
    assert _suggested_number(1) in first
    assert _suggested_number(1) in second


def test_generating_pdf_with_suggested_number_advances_sequence(client, valid_form: dict) -> None:
    valid_form["invoice_number"] = _suggested_number(1).decode()
    assert client.post("/invoice/pdf", data=valid_form).status_code == 200
    assert _suggested_number(2) in client.get("/").data


def test_hand_typed_number_does_not_advance_sequence(client, valid_form: dict) -> None:
    assert client.post("/invoice/pdf", data=valid_form).status_code == 200
    assert _suggested_number(1) in client.get("/").data


def test_failed_pdf_does_not_advance_sequence(client, valid_form: dict) -> None:
    valid_form.update({"invoice_number": _suggested_number(1).decode(), "client_name": ""})
    assert client.post("/invoice/pdf", data=valid_form).status_code == 400
    assert _suggested_number(1) in client.get("/").data



def test_generate_pdf_downloads_document(client, valid_form: dict) -> None:
    resp = client.post("/invoice/pdf", data=valid_form)
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert "Invoice_INV-7_Jane_Doe.pdf" in resp.headers["Content-Disposition"]
    assert resp.data.startswith(b"%PDF")


def test_generate_pdf_rejects_due_date_before_invoice_date(client, valid_form: dict) -> None:
    valid_form.update({"invoice_date": "2024-01-10", "due_date": "2024-01-05"})
    resp = client.post("/invoice/pdf", data=valid_form)
    assert resp.status_code == 400
    assert b"Please fill in all required fields correctly" in resp.data
    assert b"Due date must be after invoice date" in resp.data
    assert not resp.data.startswith(b"%PDF")


def test_generate_pdf_rejects_blank_business_name(client, valid_form: dict) -> None:
    valid_form["business_name"] = "  "
    resp = client.post("/invoice/pdf", data=valid_form)
    assert resp.status_code == 400
    assert b"This field is required" in resp.data


def test_generate_pdf_renderer_failure_is_reported(client, valid_form: dict, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*args, **kwargs):
        raise RuntimeError("renderer exploded")

    monkeypatch.setattr(webapp, "render_invoice_pdf", boom)
    resp = client.post("/invoice/pdf", data=valid_form)
    assert resp.status_code == 500
    assert b"Error generating PDF. Please try again." in resp.data
    # The form comes back with what the user typed.
    assert b"Website redesign" in resp.data


def test_save_template_prepopulates_next_form(client, app, valid_form: dict) -> None:
    valid_form.update({"business_name": "Template Co", "currency": "€", "tax_rate": "12.5"})
    resp = client.post("/template", data=valid_form)
    assert resp.status_code == 200
    assert b"Template saved successfully!" in resp.data

    saved = app.extensions["template_store"].load()
    assert saved.business_name == "Template Co"
    assert saved.currency == "€"
    assert saved.tax_rate == 12.5
    assert saved.additional_notes == "Net 30"

    page = client.get("/").get_data(as_text=True)
    assert 'value="Template Co"' in page
    assert 'value="12.5"' in page


def test_save_template_failure_is_reported(tmp_path, valid_form: dict) -> None:
    flask_app = webapp.create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{(tmp_path / 'fail.db').as_posix()}",
        },
        template_store=TemplateStore(FailingSlots()),
    )
    resp = flask_app.test_client().post("/template", data=valid_form)
    assert resp.status_code == 500
    assert b"Error saving template. Please try again." in resp.data


def test_oversized_logo_is_rejected(client, valid_form: dict) -> None:
    data = dict(valid_form, logo=(io.BytesIO(b"\x89PNG" + b"\x00" * (3 * MIB)), "big.png", "image/png"))
    resp = client.post("/logo", data=data, content_type="multipart/form-data")
    assert resp.status_code == 200
    assert b"Image size should be less than 2MB" in resp.data
    assert b'id="logoPreview"' not in resp.data


def test_non_image_logo_is_rejected(client, valid_form: dict) -> None:
    data = dict(valid_form, logo=(io.BytesIO(b"hello"), "notes.txt", "text/plain"))
    resp = client.post("/logo", data=data, content_type="multipart/form-data")
    assert b"Please upload a valid image file" in resp.data


def test_logo_upload_becomes_active_logo(client, valid_form: dict) -> None:
    data = dict(valid_form, logo=(io.BytesIO(b"\x89PNG" + b"\x00" * MIB), "logo.png", "image/png"))
    resp = client.post("/logo", data=data, content_type="multipart/form-data")
    assert resp.status_code == 200
    assert b'id="logoPreview"' in resp.data
    assert b"data:image/png;base64," in resp.data


def test_generate_pdf_with_uploaded_logo(client, valid_form: dict, png_bytes: bytes) -> None:
    valid_form["logo_data_url"] = LogoImage(data=png_bytes, mime_type="image/png").to_data_url()
    resp = client.post("/invoice/pdf", data=valid_form)
    assert resp.status_code == 200
    assert resp.data.startswith(b"%PDF")


def test_reset_returns_to_fresh_form(client, valid_form: dict, png_bytes: bytes) -> None:
    valid_form["logo_data_url"] = LogoImage(data=png_bytes, mime_type="image/png").to_data_url()
    resp = client.post("/reset", data=valid_form)
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")

    page = client.post("/reset", data=valid_form, follow_redirects=True).get_data(as_text=True)
    assert "Jane Doe" not in page
    assert 'id="logoPreview"' not in page
    assert _suggested_number(1).decode() in page


def test_reset_keeps_template_logo(client, valid_form: dict, png_bytes: bytes) -> None:
    valid_form["logo_data_url"] = LogoImage(data=png_bytes, mime_type="image/png").to_data_url()
    client.post("/template", data=valid_form)

    valid_form["invoice_number"] = _suggested_number(1).decode()
    client.post("/invoice/pdf", data=valid_form)

    page = client.post("/reset", data=valid_form, follow_redirects=True).get_data(as_text=True)
    assert "Jane Doe" not in page
    assert 'id="logoPreview"' in page
    assert valid_form["logo_data_url"] in page
    assert _suggested_number(2).decode() in page



def test_totals_endpoint(client) -> None:
    resp = client.get("/totals", query_string={"quantity": "3", "rate": "150", "tax_rate": "8"})
    assert resp.get_json() == {"subtotal": "$450.00", "tax": "$36.00", "total": "$486.00"}


def test_totals_endpoint_shows_nan_for_bad_numbers(client) -> None:
    resp = client.get("/totals", query_string={"quantity": "", "rate": "150", "tax_rate": "8", "currency": "€"})
    assert resp.get_json()["total"] == "€NaN"


def test_due_date_endpoint(client) -> None:
    assert client.get("/due-date?invoice_date=2024-01-10").get_json() == {"due_date": "2024-02-09"}
    assert client.get("/due-date?invoice_date=nope").status_code == 400


def test_template_default_is_not_applied_when_nothing_saved(app) -> None:
    assert app.extensions["template_store"].load() == Template()


def _strict_loads(raw: str):
    def reject(token):
        raise ValueError(f"non-standard JSON token {token}")

    return json.loads(raw, parse_constant=reject)


def test_save_template_with_blank_tax_rate_stores_zero(client, app, valid_form: dict) -> None:
    valid_form["tax_rate"] = ""
    resp = client.post("/template", data=valid_form)
    assert resp.status_code == 200
    assert b"Template saved successfully!" in resp.data

    store = app.extensions["template_store"]
    record = _strict_loads(store.slots.get(store.slot))
    assert record["taxRate"] == 0
    assert store.load().tax_rate == 0.0

    page = client.get("/").get_data(as_text=True)
    assert 'value="NaN"' not in page
    assert 'id="tax_rate" name="tax_rate" type="number" min="0" step="any" value="0"' in page


def test_form_page_wires_live_totals_and_due_date(client) -> None:
    page = client.get("/").get_data(as_text=True)
    assert "fetch('/totals?'" in page
    assert "fetch('/due-date?'" in page
    assert 'id="subtotal"' in page
    assert 'id="taxAmount"' in page
    assert 'id="total"' in page


def test_unknown_template_currency_stays_selected(client, app) -> None:
    app.extensions["template_store"].save(Template(business_name="Zurich AG", currency="CHF"))
    page = client.get("/").get_data(as_text=True)
    assert '<option value="CHF" selected>CHF</option>' in page


def test_known_currency_gets_no_extra_option(client) -> None:
    page = client.get("/").get_data(as_text=True)
    assert page.count("<option") == len(webapp.CURRENCIES)
