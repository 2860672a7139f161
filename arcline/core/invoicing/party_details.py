"""Party (customer / sender) details as an editable multi-line text block.

The block layout is::

    Name
    email@example.com
    Address line 1
    Address line 2

Empty parts are omitted when building, so parsing has to recognise the
email line by its shape rather than its position.
"""

import re

from arcline.core.invoicing.schemas import PartyDetails

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ADDRESS_SPLIT_RE = re.compile(r"\n|,")


def looks_like_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value.strip()))


def format_address_block(value: str | None) -> str:
    """Normalise a one-line or comma separated address into one part per line."""
    if not value:
        return ""
    parts = (part.strip() for part in _ADDRESS_SPLIT_RE.split(value))
    return "\n".join(part for part in parts if part)


def build_party_details_block(name: str | None = "", email: str | None = "", address: str | None = "") -> str:
    parts = [(name or "").strip(), (email or "").strip()]
    parts.extend(format_address_block(address).split("\n"))
    return "\n".join(part for part in parts if part)


def parse_party_details_block(text: str | None) -> PartyDetails:
    lines = [line.strip() for line in (text or "").splitlines()]
    lines = [line for line in lines if line]

    name = ""
    email = ""
    address: list[str] = []
    for idx, line in enumerate(lines):
        if not email and looks_like_email(line):
            email = line
        elif idx == 0:
            name = line
        else:
            address.append(line)

    return PartyDetails(name=name, email=email, address="\n".join(address))
