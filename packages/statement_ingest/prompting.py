"""Prompt builders for the document extraction oracle.

The oracle is asked for a bare JSON array so the response can be recovered by
:func:`statement_ingest.extraction.parse_extraction_response` even when it is
wrapped in prose or cut off mid-object.
"""

from __future__ import annotations

import json

_EXAMPLE_ROWS: list[dict[str, object]] = [
    {"date": "2024-01-15", "description": "CHECKERS WATERFALL", "amount": 523.45, "type": "debit"},
    {"date": "2024-01-14", "description": "SALARY DEPOSIT", "amount": 25000.00, "type": "credit"},
]


def build_extraction_instructions() -> str:
    """Return the instruction text sent alongside the statement document."""

    example = "[\n" + ",\n".join("  " + json.dumps(row) for row in _EXAMPLE_ROWS) + "\n]"
    return (
        "You are a bank statement parser. Analyze this bank statement and extract ALL "
        "transactions.\n\n"
        "For each transaction, extract:\n"
        "- date: The transaction date in YYYY-MM-DD format\n"
        "- description: The transaction description/reference\n"
        "- amount: The numeric amount (positive number only)\n"
        '- type: "debit" for money going out, "credit" for money coming in\n\n'
        "Return ONLY a valid JSON array of transactions, no other text. Example:\n"
        f"{example}\n\n"
        "Important:\n"
        "- Extract ALL transactions visible in the document\n"
        "- Use YYYY-MM-DD date format\n"
        "- Amount should be a positive number\n"
        "- Payments and purchases are debits; deposits and refunds are credits\n"
        '- If you cannot determine the type, use "debit" for negative amounts and '
        '"credit" for positive\n'
        "- Return an empty array [] if no transactions are found\n"
    )


__all__ = ["build_extraction_instructions"]
