"""Fixed instruction payload sent with every receipt extraction call.

The rules encoded here are requests to the vision model; nothing in
this module can enforce them. Consensus and the deterministic sanity
checker re-check everything the model returns. Callers cannot
customise the prompt: changing it changes what "two extractions agree"
means, so it is versioned with the code.
"""

from __future__ import annotations

from textwrap import dedent

VENDOR_HEADING = "Dumpling House"
ORDER_NUMBER_ANCHOR = "Nashville, TN"
# Instruction-level cap; the sanity checker enforces a tighter bound
PROMPT_ORDER_NUMBER_MAX = 400

ERROR_NOT_THIS_VENDOR = "NOT_THIS_VENDOR"
ERROR_OBSTRUCTED = "OBSTRUCTED"
ERROR_ILLEGIBLE = "ILLEGIBLE"
ERROR_NO_VALID_ORDER_NUMBER = "NO_VALID_ORDER_NUMBER"


def get_extraction_prompt() -> str:
    """Return the receipt extraction instructions.

    The model must answer with a single JSON object holding either the
    four receipt fields or an ``error`` code.
    """
    return dedent(
        f"""
        You are a receipt parser for {VENDOR_HEADING}. Read the receipt
        photo and extract exactly four fields. Never guess: if you are
        not confident about a value, refuse with an error instead.

        Refuse with {{"error": "{ERROR_NOT_THIS_VENDOR}"}} if the heading
        "{VENDOR_HEADING}" is not visible on the receipt.

        Refuse with {{"error": "{ERROR_OBSTRUCTED}"}} if any number or
        text on the receipt appears covered, folded over or tampered with.

        Refuse with {{"error": "{ERROR_ILLEGIBLE}"}} if the image is too
        blurry, dark or cropped to read every field with confidence.

        orderNumber: the number printed directly beneath
        "{ORDER_NUMBER_ANCHOR}". On receipts where it sits inside a black
        box with white text, use the larger number inside that box and
        ignore the smaller number printed elsewhere. It has at most 3
        digits and is never greater than {PROMPT_ORDER_NUMBER_MAX}. If no
        number satisfies these rules refuse with
        {{"error": "{ERROR_NO_VALID_ORDER_NUMBER}"}}.

        orderTotal: the total amount paid, as a number (e.g. 23.45).

        orderDate: the order date as MM/DD only. Drop the year.

        orderTime: the time printed to the right of the date, converted
        to 24-hour HH:MM.

        Respond ONLY with JSON, either
        {{"orderNumber": "...", "orderTotal": 0.00, "orderDate": "MM/DD", "orderTime": "HH:MM"}}
        or {{"error": "..."}}. Use null for a field you cannot find.
        """
    ).strip()
