"""
MATKA - Digit & Family Utilities

Pure helpers shared by the classifier: Ank (digit sum mod 10), string
reversal, jodi family tables and sangam answer parsing.
"""

import re
from typing import Dict, FrozenSet, Optional

PANNA_SENTINEL = "***"
JODI_SENTINEL = "**"
DIGIT_SENTINEL = "*"

_PANNA_RE = re.compile(r"^\d{3}$")
_JODI_RE = re.compile(r"^\d{2}$")


# =============================================================================
# FAMILY TABLES
# =============================================================================

# Ten 8-member "group jodi" families, keyed by their conventional name.
GROUP_FAMILIES: Dict[str, FrozenSet[str]] = {
    "12": frozenset({"12", "17", "21", "26", "62", "67", "71", "76"}),
    "13": frozenset({"13", "18", "31", "36", "63", "68", "81", "86"}),
    "14": frozenset({"14", "19", "41", "46", "64", "69", "91", "96"}),
    "15": frozenset({"01", "06", "10", "15", "51", "56", "60", "65"}),
    "23": frozenset({"23", "28", "32", "37", "73", "78", "82", "87"}),
    "24": frozenset({"24", "29", "42", "47", "74", "79", "92", "97"}),
    "25": frozenset({"02", "07", "20", "25", "52", "57", "70", "75"}),
    "34": frozenset({"34", "39", "43", "48", "84", "89", "93", "98"}),
    "35": frozenset({"03", "08", "30", "35", "53", "58", "80", "85"}),
    "45": frozenset({"04", "09", "40", "45", "54", "59", "90", "95"}),
}

# Red bracket families cover the twenty jodis no group family holds.
HALF_BRACKET: FrozenSet[str] = frozenset({"05", "16", "27", "38", "49", "50", "61", "72", "83", "94"})
FULL_BRACKET: FrozenSet[str] = frozenset({"00", "11", "22", "33", "44", "55", "66", "77", "88", "99"})

FULL_BRACKET_ANSWER = "Full Bracket"


# =============================================================================
# DIGIT HELPERS
# =============================================================================

def digit_sum(value) -> int:
    """
    Ank of a numeric string: sum of its digits mod 10.

    Raises:
        ValueError: if the value contains a non-digit character
    """
    text = str(value).strip()
    if not text or not text.isdigit():
        raise ValueError(f"not a numeric string: {value!r}")
    return sum(int(ch) for ch in text) % 10


def reverse(value: str) -> str:
    return value[::-1]


def is_panna(value: Optional[str]) -> bool:
    """True for a concrete 3-digit panna."""
    return bool(value) and bool(_PANNA_RE.match(value))


def is_jodi(value: Optional[str]) -> bool:
    """True for a concrete 2-digit jodi."""
    return bool(value) and bool(_JODI_RE.match(value))


def derive_jodi(opening_panna: Optional[str], closing_panna: Optional[str], fallback: str = JODI_SENTINEL) -> str:
    """
    Jodi of a day: Ank(open) followed by Ank(close).

    When either panna is not concrete the fallback (usually the raw jodi from
    the source) is returned unchanged.
    """
    if is_panna(opening_panna) and is_panna(closing_panna):
        return f"{digit_sum(opening_panna)}{digit_sum(closing_panna)}"
    return fallback


# =============================================================================
# FAMILY LOOKUPS
# =============================================================================

def group_family(jodi: str) -> Optional[FrozenSet[str]]:
    """8-member group jodi family containing jodi, if any."""
    for members in GROUP_FAMILIES.values():
        if jodi in members:
            return members
    return None


def bracket_family(answer: str) -> FrozenSet[str]:
    """Red bracket family selected by the bettor's answer."""
    if str(answer).strip().lower() == FULL_BRACKET_ANSWER.lower():
        return FULL_BRACKET
    return HALF_BRACKET


def family_of(jodi: str) -> Optional[FrozenSet[str]]:
    """
    Family of any 2-digit string.

    The ten group families and the two bracket families partition all 100
    jodis; anything that is not a 2-digit string has no family.
    """
    members = group_family(jodi)
    if members is not None:
        return members
    if jodi in HALF_BRACKET:
        return HALF_BRACKET
    if jodi in FULL_BRACKET:
        return FULL_BRACKET
    return None


# =============================================================================
# SANGAM ANSWERS
# =============================================================================

def parse_composite(value: str) -> Dict[str, str]:
    """
    Parse "Key: value, Key: value" into a dict.

    Parts without a key or a value are ignored; a later duplicate key wins.
    """
    fields: Dict[str, str] = {}
    for part in str(value or "").split(","):
        key, sep, val = part.partition(":")
        key, val = key.strip(), val.strip()
        if sep and key and val:
            fields[key] = val
    return fields
