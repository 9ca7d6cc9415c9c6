"""
Shape extraction from lesson section text.

A deliberately narrow, best-effort pattern matcher for perimeter lessons.
Only squares, rectangles and triangles with whole-number sides measured in
feet, inches, centimeters or meters are recognised. Anything outside this
vocabulary yields None so callers fall back to a definition question instead
of inventing numbers.

Grammar (case-insensitive, first match wins):

    N         := whole number, not part of a decimal ("2.5") or a longer number
    UNIT      := feet | foot | ft | inches | inch | centimeters | cm | meters | m
    RECT_DIMS := N UNIT (tall|high|long) <up to 40 chars> M UNIT (wide|across)
    SQ_EQ     := "perimeter" "=" a "+" a "+" a "+" a "="
    RECT_EQ   := "perimeter" "=" a "+" b "+" a "+" b "="
    TRI_EQ    := "perimeter" "=" a "+" b "+" c "="
    TRI_SIDES := "triangle" <up to 60 chars> a [UNIT] "," b [UNIT] [","] ["and"] c UNIT
    EACH_SIDE := "each side" <no digits, same line> N UNIT

Equation units are read from the word after "= TOTAL". With no word the unit
is "units"; a word outside UNIT (yards, miles, ...) rejects the equation.
EACH_SIDE describes a square unless the text names a triangle, in which case
it is an equilateral triangle.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

ShapeKind = Literal["square", "rectangle", "triangle"]

_NUM = r"(?<![\d.,])(\d+)(?!\d|[.,]\d)"
_UNIT = r"(?:feet|foot|ft|inches|inch|centimeters|centimeter|cm|meters|meter|m)\b"

_UNIT_ALIASES = {
    "feet": "feet",
    "foot": "feet",
    "ft": "feet",
    "inches": "inches",
    "inch": "inches",
    "centimeters": "cm",
    "centimeter": "cm",
    "cm": "cm",
    "meters": "m",
    "meter": "m",
    "m": "m",
}

_SINGULAR = {"feet": "foot", "inches": "inch", "units": "unit"}


def _same(group: int) -> str:
    """Backreference to an earlier number, with the same digit boundaries."""
    return rf"\b\{group}(?!\d|[.,]\d)"


RECT_DIMS_RE = re.compile(
    rf"{_NUM}\s*({_UNIT})\s*(?:tall|high|long)\b.{{0,40}}?{_NUM}\s*\2\s*(?:wide|across)\b",
    re.IGNORECASE,
)
SQUARE_EQ_RE = re.compile(
    rf"perimeter\s*=\s*{_NUM}\s*\+\s*{_same(1)}\s*\+\s*{_same(1)}\s*\+\s*{_same(1)}\s*=",
    re.IGNORECASE,
)
RECT_EQ_RE = re.compile(
    rf"perimeter\s*=\s*{_NUM}\s*\+\s*{_NUM}\s*\+\s*{_NUM}\s*\+\s*{_NUM}\s*=",
    re.IGNORECASE,
)
TRIANGLE_EQ_RE = re.compile(
    rf"perimeter\s*=\s*{_NUM}\s*\+\s*{_NUM}\s*\+\s*{_NUM}\s*=",
    re.IGNORECASE,
)
TRIANGLE_SIDES_RE = re.compile(
    rf"triangle\b.{{0,60}}?{_NUM}\s*(?:{_UNIT})?\s*,\s*{_NUM}\s*(?:{_UNIT})?\s*,?\s*(?:and\s+)?{_NUM}\s*({_UNIT})",
    re.IGNORECASE,
)
EACH_SIDE_RE = re.compile(
    rf"each\s+side\b[^\d\n]*?{_NUM}\s*({_UNIT})",
    re.IGNORECASE,
)
EQUATION_TAIL_RE = re.compile(r"(\d+)(?!\d|[.,]\d)[ \t]*([A-Za-z]+)?")
EQUATION_TOTAL_RE = re.compile(
    r"perimeter\s*=\s*([0-9+\s]+)=[ \t]*(\d+)(?!\d|[.,]\d)[ \t]*([A-Za-z]+)?",
    re.IGNORECASE,
)
_TRIANGLE_WORD_RE = re.compile(r"\btriangle", re.IGNORECASE)


@dataclass(frozen=True)
class ShapeDescriptor:
    """Side lengths of a recognised shape. Unused sides are None."""

    shape: ShapeKind
    a: int
    unit: str
    b: int | None = None
    c: int | None = None

    @property
    def sides(self) -> tuple[int, ...]:
        """All side lengths in walking order."""
        if self.shape == "square":
            return (self.a, self.a, self.a, self.a)
        if self.shape == "rectangle":
            b = self.b if self.b is not None else self.a
            return (self.a, b, self.a, b)
        return (self.a, self.b or self.a, self.c or self.a)

    @property
    def perimeter(self) -> int:
        return sum(self.sides)


@dataclass(frozen=True)
class EquationTotal:
    """An explicit "Perimeter = ... = total" line for an unrecognised shape."""

    sum_text: str
    total: int
    unit: str


def normalize_unit(unit: str | None) -> str | None:
    """
    Map unit spellings to feet/inches/cm/m.

    A missing unit becomes "units"; a word outside the vocabulary gives None.
    """
    word = (unit or "").strip().lower()
    if not word:
        return "units"
    return _UNIT_ALIASES.get(word)


def format_length(value: int, unit: str) -> str:
    if value == 1:
        return f"1 {_SINGULAR.get(unit, unit)}"
    return f"{value} {unit}"


def _equation_unit(text: str, pos: int) -> str | None:
    """Unit of the total written after the equation's closing "=" at pos."""
    rest = text[pos:].lstrip(" \t")
    if not rest[:1].isdigit():
        return "units"
    tail = EQUATION_TAIL_RE.match(rest)
    if tail is None:
        # decimal or malformed total
        return None
    return normalize_unit(tail.group(2))


def extract_shape(text: str | None) -> ShapeDescriptor | None:
    """
    Extract a shape descriptor from section text.

    Returns:
        ShapeDescriptor, or None when no pattern in the grammar matches or
        the matched equation is written in an unknown unit.
    """
    text = text or ""

    match = RECT_DIMS_RE.search(text)
    if match:
        a, b = int(match.group(1)), int(match.group(3))
        unit = normalize_unit(match.group(2))
        if a > 0 and b > 0 and unit is not None:
            return ShapeDescriptor("rectangle", a, unit, b=b)

    match = SQUARE_EQ_RE.search(text)
    if match:
        a = int(match.group(1))
        unit = _equation_unit(text, match.end())
        if unit is None:
            return None
        if a > 0:
            return ShapeDescriptor("square", a, unit)

    match = RECT_EQ_RE.search(text)
    if match:
        n1, n2, n3, n4 = (int(g) for g in match.groups())
        if n1 == n3 and n2 == n4 and n1 > 0 and n2 > 0:
            unit = _equation_unit(text, match.end())
            if unit is None:
                return None
            return ShapeDescriptor("rectangle", n1, unit, b=n2)

    match = TRIANGLE_EQ_RE.search(text)
    if match:
        a, b, c = (int(g) for g in match.groups())
        unit = _equation_unit(text, match.end())
        if unit is None:
            return None
        if a > 0 and b > 0 and c > 0:
            return ShapeDescriptor("triangle", a, unit, b=b, c=c)

    match = TRIANGLE_SIDES_RE.search(text)
    if match:
        a, b, c = int(match.group(1)), int(match.group(2)), int(match.group(3))
        unit = normalize_unit(match.group(4))
        if a > 0 and b > 0 and c > 0 and unit is not None:
            return ShapeDescriptor("triangle", a, unit, b=b, c=c)

    match = EACH_SIDE_RE.search(text)
    if match:
        a = int(match.group(1))
        unit = normalize_unit(match.group(2))
        if a > 0 and unit is not None:
            if _TRIANGLE_WORD_RE.search(text):
                return ShapeDescriptor("triangle", a, unit, b=a, c=a)
            return ShapeDescriptor("square", a, unit)

    return None


def extract_equation_total(text: str | None) -> EquationTotal | None:
    """Find "Perimeter = <sum> = <total> [unit]" with a positive total in a known unit."""
    match = EQUATION_TOTAL_RE.search(text or "")
    if not match:
        return None
    total = int(match.group(2))
    unit = normalize_unit(match.group(3))
    if total <= 0 or unit is None:
        return None
    sum_text = re.sub(r"\s+", " ", match.group(1)).strip()
    return EquationTotal(sum_text=sum_text, total=total, unit=unit)
