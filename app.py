import io
import logging
from datetime import date, timedelta

from flask import (
    Flask, render_template, request, redirect, url_for,
    flash, send_file, jsonify
)

from config import Config
from models import (
    Base, ensure_sqlite_dir, make_engine, make_session_factory,
    InvoiceInput, Template, next_invoice_number, peek_invoice_number
)
from pdf_service import render_invoice_pdf, invoice_filename
from template_store import SqlSlotStore, TemplateStore, TemplateStoreError
from totals import CURRENCIES, calculate_totals, format_currency, number_text
from uploads import read_logo_upload
from validation import validate_invoice

logger = logging.getLogger(__name__)

FORM_FIELDS = (
    "business_name", "currency", "invoice_number", "client_name",
    "invoice_date", "due_date", "service_description", "quantity",
    "rate", "tax_rate", "additional_notes", "watermark", "logo_data_url",
)


# -----------------------------
# Helpers
# -----------------------------
def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def default_due_date(invoice_date: date, days: int = 30) -> date:
    return invoice_date + timedelta(days=days)


def _posted_values() -> dict:
    return {k: request.form.get(k, "") for k in FORM_FIELDS}


def _template_values(t: Template) -> dict:
    return {
        "business_name": t.business_name,
        "currency": t.currency,
        "tax_rate": number_text(t.tax_rate),
        "additional_notes": t.additional_notes,
        "logo_data_url": t.logo.to_data_url() if t.logo else "",
    }


# -----------------------------
# App factory
# -----------------------------
def create_app(config: dict | None = None, template_store: TemplateStore | None = None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    configure_logging(app.config["LOG_LEVEL"])

    db_url = app.config["SQLALCHEMY_DATABASE_URI"]
    ensure_sqlite_dir(db_url)
    engine = make_engine(db_url, echo=app.config["SQLALCHEMY_ECHO"])
    Base.metadata.create_all(engine)

    SessionLocal = make_session_factory(engine)

    def db_session():
        return SessionLocal()

    store = template_store or TemplateStore(SqlSlotStore(SessionLocal), slot=app.config["TEMPLATE_SLOT"])
    app.extensions["template_store"] = store

    def fresh_form() -> dict:
        today = date.today()
        with db_session() as s:
            inv_no = peek_invoice_number(s, today.year, app.config["INVOICE_SEQ_WIDTH"])

        values = {k: "" for k in FORM_FIELDS}
        values.update({
            "currency": app.config["DEFAULT_CURRENCY"],
            "tax_rate": "0",
            "invoice_number": inv_no,
            "invoice_date": today.isoformat(),
            "due_date": default_due_date(today, app.config["PAYMENT_DUE_DAYS"]).isoformat(),
            "quantity": "1",
        })
        saved = store.load()
        if saved != Template():
            values.update(_template_values(saved))
        return values

    def claim_invoice_number(number: str) -> None:
        # Only the suggested number advances the sequence; hand-typed ones do not.
        year = date.today().year
        width = app.config["INVOICE_SEQ_WIDTH"]
        with db_session() as s:
            if number == peek_invoice_number(s, year, width):
                next_invoice_number(s, year, width)
                s.commit()

    def render_form(values: dict, errors: dict | None = None, status: int = 200):
        inv = InvoiceInput.from_form(values)
        totals = calculate_totals(inv.quantity, inv.rate, inv.tax_rate)
        return render_template(
            "invoice_form.html",
            form=values,
            errors=errors or {},
            currencies=CURRENCIES,
            totals={
                "subtotal": format_currency(totals.subtotal, inv.currency),
                "tax": format_currency(totals.tax, inv.currency),
                "total": format_currency(totals.total, inv.currency),
            },
        ), status

    # -----------------------------
    # Form
    # -----------------------------
    @app.route("/")
    def index():
        return render_form(fresh_form())

    @app.route("/reset", methods=["POST"])
    def reset():
        return redirect(url_for("index"))

    # -----------------------------
    # Logo upload
    # -----------------------------
    @app.route("/logo", methods=["POST"])
    def logo_upload():
        values = _posted_values()
        read = read_logo_upload(request.files.get("logo"), max_bytes=app.config["LOGO_MAX_BYTES"])

        if read is None:
            values["logo_data_url"] = ""
        elif read.failed:
            # Previous logo (if any) stays active.
            flash(read.reason, "error")
        else:
            values["logo_data_url"] = read.logo.to_data_url()

        return render_form(values)

    # -----------------------------
    # PDF
    # -----------------------------
    @app.route("/invoice/pdf", methods=["POST"])
    def invoice_pdf():
        values = _posted_values()
        inv = InvoiceInput.from_form(values)

        errors = validate_invoice(inv)
        if errors:
            flash("Please fill in all required fields correctly", "error")
            return render_form(values, errors=errors, status=400)

        try:
            data = render_invoice_pdf(inv)
        except Exception:
            logger.exception("Error generating PDF for invoice %r", inv.invoice_number)
            flash("Error generating PDF. Please try again.", "error")
            return render_form(values, status=500)

        claim_invoice_number(inv.invoice_number)
        filename = invoice_filename(inv)
        logger.info("PDF generated successfully: %s", filename)
        return send_file(
            io.BytesIO(data),
            as_attachment=True,
            download_name=filename,
            mimetype="application/pdf"
        )

    # -----------------------------
    # Template
    # -----------------------------
    @app.route("/template", methods=["POST"])
    def template_save():
        values = _posted_values()
        inv = InvoiceInput.from_form(values)
        try:
            store.save(Template.from_invoice(inv))
        except TemplateStoreError:
            flash("Error saving template. Please try again.", "error")
            return render_form(values, status=500)

        flash("Template saved successfully!", "success")
        return render_form(values)

    # -----------------------------
    # Live helpers
    # -----------------------------
    @app.route("/totals")
    def totals_json():
        inv = InvoiceInput.from_form(request.args)
        t = calculate_totals(inv.quantity, inv.rate, inv.tax_rate)
        return jsonify({
            "subtotal": format_currency(t.subtotal, inv.currency),
            "tax": format_currency(t.tax, inv.currency),
            "total": format_currency(t.total, inv.currency),
        })

    @app.route("/due-date")
    def due_date_json():
        inv = InvoiceInput.from_form({"invoice_date": request.args.get("invoice_date")})
        if inv.invoice_date is None:
            return jsonify({"error": "invoice_date must be YYYY-MM-DD"}), 400
        due = default_due_date(inv.invoice_date, app.config["PAYMENT_DUE_DAYS"])
        return jsonify({"due_date": due.isoformat()})

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
