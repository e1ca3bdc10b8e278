# backend/modules/sales_inventory/services/name_parser.py

"""
Split free-form product names into a base product and addon descriptors.

"Mini Croffle with Choco Flakes and Marshmallow" is sold as one line, but
its stock impact is the "Mini Croffle" base recipe plus one unit of each
addon. Parsing is pure and total: every input string yields a result.
"""

import re
from typing import Iterable, List, Optional, Sequence

from ..schemas.deduction_schemas import ParsedProduct


KNOWN_BASE_PRODUCTS: Sequence[str] = (
    "Mini Croffle",
    "Croffle Overload",
    "Regular Croffle",
)

_CONNECTIVE = re.compile(r"\b(?:with|and)\b", re.IGNORECASE)
_LEADING_CONNECTIVE = re.compile(
    r"^[\s,:\-]*(?:(?:with|and|&)(?=\s|,|$))?[\s,]*", re.IGNORECASE
)
_ADDON_SEPARATOR = re.compile(r"\s*,\s*|\s+(?:and|with|&)\s+", re.IGNORECASE)


def _longest_known_base(lowered: str, known_bases: Iterable[str]) -> Optional[str]:
    candidates = [base for base in known_bases if base.lower() in lowered]
    if not candidates:
        return None
    # Ties on length resolve alphabetically
    return sorted(candidates, key=lambda base: (-len(base), base))[0]


def split_addon_descriptors(remainder: str) -> List[str]:
    """Split the text after the base product into individual addon descriptors"""
    remainder = _LEADING_CONNECTIVE.sub("", remainder or "")
    descriptors = []
    for part in _ADDON_SEPARATOR.split(remainder):
        part = _LEADING_CONNECTIVE.sub("", part).strip(" \t,.;:-")
        if part:
            descriptors.append(part)
    return descriptors


def parse_product_name(
    name: Optional[str], known_bases: Iterable[str] = KNOWN_BASE_PRODUCTS
) -> ParsedProduct:
    original = name or ""
    text = " ".join(original.split())
    lowered = text.lower()

    base = _longest_known_base(lowered, known_bases)
    is_mix_and_match = base is not None or bool(_CONNECTIVE.search(text))

    if not is_mix_and_match:
        return ParsedProduct(
            base_name=original,
            addons=[],
            original_name=original,
            is_mix_and_match=False,
        )

    if base is not None:
        start = lowered.find(base.lower())
        base_name = base
        remainder = text[start + len(base):]
    else:
        split_at = lowered.find(" with ")
        if split_at == -1:
            # A bare "and" without a known base, e.g. "Salt and Pepper Fries"
            base_name = text
            remainder = ""
        else:
            base_name = text[:split_at].strip()
            remainder = text[split_at + len(" with "):]

    return ParsedProduct(
        base_name=base_name,
        addons=split_addon_descriptors(remainder),
        original_name=original,
        is_mix_and_match=True,
    )
