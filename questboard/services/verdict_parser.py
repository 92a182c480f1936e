"""Extraction of the accept/reject decision from free-text classifier output.

The classifier is instructed to open its answer with ``##yes##`` or ``##no##``.
The first marker found (case-insensitive, anywhere in the text) decides. A
missing marker is a normal negative outcome, never an error.
"""

import re

from questboard.models.service_models import Verdict


VERDICT_MARKER = re.compile(r"##(yes|no)##", re.IGNORECASE)


def parse_verdict(raw_text: str | None) -> Verdict:
    """Parse a classifier answer into a Verdict. Never raises."""
    raw = raw_text or ""
    match = VERDICT_MARKER.search(raw)
    accepted = match is not None and match.group(1).lower() == "yes"
    return Verdict(accepted=accepted, raw=raw)
