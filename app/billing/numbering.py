"""
Human-facing document numbers for invoices and receipts.

Format: ``{PREFIX}-{YEAR}-{SEQUENCE:05d}``, e.g. ``INV-2025-00042``.
The sequence restarts at 1 for every prefix/year pair.

Numbers are allocated inside the unit of work that inserts the record. Two
concurrent allocations can pick the same number; the unique constraint on
the column rejects the second insert and the caller retries.
"""

from __future__ import annotations

SEQUENCE_WIDTH = 5


def document_prefix(kind: str, year: int) -> str:
    """Return the ``{kind}-{year}-`` prefix shared by a year's numbers."""
    return f"{kind}-{year}-"


def next_document_number(kind: str, year: int, last_number: str | None) -> str:
    """
    Return the number following ``last_number`` in the kind/year series.

    Args:
        kind: Series prefix such as "INV" or "RCP"
        year: Year component of the number
        last_number: Highest number already issued in the series, if any

    Example:
        next_document_number("INV", 2025, None)              # INV-2025-00001
        next_document_number("INV", 2025, "INV-2025-00041")  # INV-2025-00042
    """
    prefix = document_prefix(kind, year)
    sequence = 1
    if last_number and last_number.startswith(prefix):
        sequence = int(last_number[len(prefix):]) + 1
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"
