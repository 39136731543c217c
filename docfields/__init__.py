"""Business document field extraction.

Turns the block graph returned by an OCR/layout analysis service into
per-company structured records: form fields, pattern-matched values and
reconstructed table line items, for single-page and multi-page documents.
"""

__version__ = "0.3.0"
