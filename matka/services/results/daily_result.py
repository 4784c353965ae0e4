"""
MATKA - Daily Result

The normalized outcome of one market on one date, whatever the source.
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Tuple

from matka.core.exceptions import InvalidRequestError
from matka.models.models import MarketSegment
from matka.services.settlement.digits import (
    DIGIT_SENTINEL,
    JODI_SENTINEL,
    PANNA_SENTINEL,
    derive_jodi,
    digit_sum,
    is_jodi,
    is_panna,
)

_HALF_RE = re.compile(r"^(\d)-(\d{3})$")


class ResultState(str, Enum):
    UNDECLARED = "undeclared"
    PARTIALLY_DECLARED = "partially_declared"
    FULLY_DECLARED = "fully_declared"
    CLOSED = "closed"


@dataclass(frozen=True)
class DailyResult:
    """
    Declared panna/jodi values of one market day.

    The jodi is re-derived from the two pannas whenever both are concrete,
    so an upstream jodi can never disagree with them.
    """
    opening_panna: str = PANNA_SENTINEL
    closing_panna: str = PANNA_SENTINEL
    jodi: str = JODI_SENTINEL
    is_closed: bool = False
    result_date: Optional[date] = None
    source: str = "manual"

    def __post_init__(self):
        object.__setattr__(self, "jodi", derive_jodi(self.opening_panna, self.closing_panna, self.jodi))

    @classmethod
    def closed(cls, result_date: Optional[date] = None, source: str = "scrape") -> "DailyResult":
        return cls(is_closed=True, result_date=result_date, source=source)

    @property
    def state(self) -> ResultState:
        if self.is_closed:
            return ResultState.CLOSED
        opened, closed = is_panna(self.opening_panna), is_panna(self.closing_panna)
        if (opened and closed) or is_jodi(self.jodi):
            return ResultState.FULLY_DECLARED
        if opened or closed:
            return ResultState.PARTIALLY_DECLARED
        return ResultState.UNDECLARED

    def is_declared(self, segment: MarketSegment) -> bool:
        """Whether wagers depending on the segment can be decided."""
        if self.is_closed:
            return False
        if segment == MarketSegment.OPEN:
            return is_panna(self.opening_panna)
        if segment == MarketSegment.CLOSE:
            return is_panna(self.closing_panna)
        return is_jodi(self.jodi)

    def panna_for(self, segment: MarketSegment) -> str:
        return self.opening_panna if segment == MarketSegment.OPEN else self.closing_panna

    def to_dict(self):
        return {
            "opening_panna": self.opening_panna,
            "jodi": self.jodi,
            "closing_panna": self.closing_panna,
            "is_closed": self.is_closed,
            "result_date": self.result_date.isoformat() if self.result_date else None,
            "source": self.source,
        }


def parse_half(value: Optional[str], field_name: str) -> Optional[Tuple[str, str]]:
    """
    Parse a "<digit>-<panna>" manual half into (digit, panna).

    None or an empty string means the half was left blank.
    """
    if value is None or str(value).strip() == "":
        return None
    match = _HALF_RE.match(str(value).strip())
    if not match:
        raise InvalidRequestError(
            f"Invalid '{field_name}': {value!r}. Expected '<digit>-<panna>' such as '6-123'."
        )
    return match.group(1), match.group(2)


@dataclass(frozen=True)
class ManualResult:
    """
    Manually declared result of one market.

    Either half may be left blank; a jackpot declaration supplies only a jodi.
    """
    first_half: Optional[str] = None
    second_half: Optional[str] = None
    jodi: Optional[str] = None

    def __post_init__(self):
        parse_half(self.first_half, "first_half")
        parse_half(self.second_half, "second_half")
        if self.jodi is not None and not is_jodi(str(self.jodi).strip()):
            raise InvalidRequestError(f"Invalid 'jodi': {self.jodi!r}. It must be a 2-digit string.")
        if not (self.first_half or self.second_half or self.jodi):
            raise InvalidRequestError("A manual result needs at least one half or a jodi")

    @classmethod
    def from_pannas(cls, open_panna: Optional[str] = None, close_panna: Optional[str] = None) -> "ManualResult":
        """Build the "<digit>-<panna>" halves from bare pannas."""
        def half(panna, name):
            if panna is None or str(panna).strip() == "":
                return None
            panna = str(panna).strip()
            if not is_panna(panna):
                raise InvalidRequestError(f"Invalid '{name}': {panna!r}. A panna must have exactly 3 digits.")
            return f"{digit_sum(panna)}-{panna}"

        return cls(first_half=half(open_panna, "open_panna"), second_half=half(close_panna, "close_panna"))

    def to_daily_result(self, result_date: Optional[date] = None) -> DailyResult:
        first = parse_half(self.first_half, "first_half")
        second = parse_half(self.second_half, "second_half")
        if self.jodi is not None:
            raw_jodi = str(self.jodi).strip()
        else:
            raw_jodi = f"{first[0] if first else DIGIT_SENTINEL}{second[0] if second else DIGIT_SENTINEL}"
        return DailyResult(
            opening_panna=first[1] if first else PANNA_SENTINEL,
            closing_panna=second[1] if second else PANNA_SENTINEL,
            jodi=raw_jodi,
            result_date=result_date,
            source="manual",
        )
