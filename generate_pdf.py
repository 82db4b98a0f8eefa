# generate_pdf.py
import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from config import Config
from models import Base, InvoiceInput, ensure_sqlite_dir, make_engine, make_session_factory
from pdf_service import write_invoice_pdf
from template_store import SqlSlotStore, TemplateStore
from validation import validate_invoice

logger = logging.getLogger(__name__)

# camelCase input key -> InvoiceInput attribute filled from the saved template
TEMPLATE_KEYS = {
    "businessName": "business_name",
    "currency": "currency",
    "taxRate": "tax_rate",
    "additionalNotes": "additional_notes",
    "logoDataUrl": "logo",
}


def apply_template(inv: InvoiceInput, raw: dict, store: TemplateStore) -> InvoiceInput:
    """Fill the template-backed fields the input JSON left out."""
    t = store.load()
    updates = {}
    for key, attr in TEMPLATE_KEYS.items():
        if raw.get(key) in (None, ""):
            updates[attr] = getattr(t, attr)
    return replace(inv, **updates)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate an invoice PDF from a JSON file.")
    parser.add_argument("--input", required=True, help="JSON file with the invoice fields (camelCase keys).")
    parser.add_argument("--out-dir", type=str, default="", help="Where to write the PDF (default: EXPORTS_DIR).")
    parser.add_argument("--template", action="store_true", help="Fill missing business fields from the saved template.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=Config.LOG_LEVEL.upper(), format="%(levelname)s %(name)s: %(message)s")

    try:
        raw = json.loads(Path(args.input).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SystemExit(f"Could not read {args.input}: {e}")
    if not isinstance(raw, dict):
        raise SystemExit("Input must be a JSON object.")

    inv = InvoiceInput.from_dict(raw)

    if args.template:
        ensure_sqlite_dir(Config.SQLALCHEMY_DATABASE_URI)
        engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
        Base.metadata.create_all(engine)
        store = TemplateStore(SqlSlotStore(make_session_factory(engine)), slot=Config.TEMPLATE_SLOT)
        inv = apply_template(inv, raw, store)

    errors = validate_invoice(inv)
    if errors:
        for name, reason in errors.items():
            print(f"INVALID  {name}: {reason}", file=sys.stderr)
        return 2

    try:
        path = write_invoice_pdf(inv, args.out_dir or None)
    except Exception as e:
        logger.exception("Error generating PDF")
        print(f"FAIL  {inv.invoice_number}  ({e})", file=sys.stderr)
        return 1

    print(f"DONE  {inv.invoice_number} -> {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
