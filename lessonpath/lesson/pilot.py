"""
Checkpoint enablement.

Generated checkpoints are tuned for grade 2 math lessons about perimeter;
other lessons play without checkpoint gating.
"""
from __future__ import annotations

import re
from typing import Optional


def parse_grade(grade_band: Optional[str]) -> Optional[int]:
    """First integer in a grade band ("2", "Grade 2", "2-3"), or None."""
    match = re.search(r"\d+", grade_band or "")
    return int(match.group(0)) if match else None


def is_perimeter_pilot(
    subject: Optional[str],
    grade_band: Optional[str],
    lesson_title: Optional[str],
) -> bool:
    subject_text = (subject or "").strip().lower()
    title_text = (lesson_title or "").strip().lower()
    return "math" in subject_text and parse_grade(grade_band) == 2 and "perimeter" in title_text
