"""Text preparation and placement for the mission order page.

This is deliberately not a bidi implementation. A single field is either
plain left-to-right text, or a right-to-left line in which embedded Latin
words and numbers keep their own order. The one composite field that mixes
fonts (the order-number line) is described as an explicit list of
``DirectionalRun`` segments already in visual order, and ``layout_runs``
places them using each segment's own metrics.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Sequence

import arabic_reshaper

ARABIC_RE = re.compile("[\u0600-\u06FF\u0750-\u077F\uFB50-\uFDFF\uFE70-\uFEFF]")
# Latin words and numbers; inner separators keep dates and codes together.
LTR_RUN_RE = re.compile(
    "[A-Za-z0-9\u00C0-\u024F]+(?:[/:.,@_\\-][A-Za-z0-9\u00C0-\u024F]+)*"
)
MIRRORED = str.maketrans("()[]{}<>", ")(][}{><")

# (text, font name, font size) -> width in points
Measure = Callable[[str, str, float], float]


@dataclass(frozen=True)
class DirectionalRun:
    text: str
    font: str
    size: float


@dataclass(frozen=True)
class PlacedRun:
    text: str
    font: str
    size: float
    x: float
    width: float


def has_arabic(text: str) -> bool:
    return bool(ARABIC_RE.search(text or ""))


def shape(text: str) -> str:
    """Replace Arabic letters with their contextual joining forms."""
    if not has_arabic(text):
        return text
    return arabic_reshaper.reshape(text)


def visual_order(text: str) -> str:
    """Reorder a logical right-to-left line for a left-to-right drawing API."""
    if not has_arabic(text):
        return text
    pieces: List[str] = []
    pos = 0
    for match in LTR_RUN_RE.finditer(text):
        if match.start() > pos:
            pieces.append(text[pos:match.start()][::-1].translate(MIRRORED))
        pieces.append(match.group())
        pos = match.end()
    if pos < len(text):
        pieces.append(text[pos:][::-1].translate(MIRRORED))
    return "".join(reversed(pieces))


def prepare_text(text: str, direction: str) -> str:
    text = text or ""
    if direction == "rtl" or has_arabic(text):
        return visual_order(shape(text))
    return text


def wrap_text(
    text: str, max_width: float, font: str, size: float, measure: Measure
) -> List[str]:
    """Greedy word wrap; widths are taken from the shaped text."""
    lines: List[str] = []
    current = ""
    for word in (text or "").split(" "):
        candidate = f"{current} {word}" if current else word
        if current and measure(shape(candidate), font, size) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def align_x(x: float, width: float, align: str) -> float:
    if align == "center":
        return x - width / 2
    if align == "right":
        return x - width
    return x


def layout_runs(
    runs: Sequence[DirectionalRun], center_x: float, measure: Measure
) -> List[PlacedRun]:
    widths = [measure(run.text, run.font, run.size) for run in runs]
    x = center_x - sum(widths) / 2
    placed: List[PlacedRun] = []
    for run, width in zip(runs, widths):
        placed.append(PlacedRun(run.text, run.font, run.size, x, width))
        x += width
    return placed


def order_number_runs(
    label: str,
    number: str,
    suffix: str,
    year: str,
    script_font: str,
    latin_font: str,
    size: float,
    direction: str,
) -> List[DirectionalRun]:
    """Segments of the "label: number suffix year" line, in visual order."""
    label_run = DirectionalRun(prepare_text(f"{label}:", direction), script_font, size)
    number_run = DirectionalRun(f" {number} ", latin_font, size)
    suffix_run = DirectionalRun(prepare_text(suffix, direction), script_font, size)
    year_run = DirectionalRun(year, latin_font, size)
    if direction == "rtl":
        return [year_run, suffix_run, number_run, label_run]
    return [label_run, number_run, suffix_run, year_run]
