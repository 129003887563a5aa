from dataclasses import dataclass
from hashlib import sha256
from io import BytesIO
from typing import Optional

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont

from mission_orders.core.errors import RenderError


@dataclass(frozen=True)
class FontSet:
    """Registered reportlab font names used by the renderer.

    ``script`` fonts must cover Arabic; without a configured TTF they fall
    back to Helvetica, which draws unsupported glyphs as blanks.
    """

    latin: str = "Helvetica"
    latin_bold: str = "Helvetica-Bold"
    script: str = "Helvetica"
    script_bold: str = "Helvetica-Bold"

    def pick(self, bold: bool, script: bool) -> str:
        if script:
            return self.script_bold if bold else self.script
        return self.latin_bold if bold else self.latin


def register_ttf(family: str, data: bytes) -> str:
    # Keyed by content so a changed font file never reuses a stale registration.
    name = f"{family}-{sha256(data).hexdigest()[:12]}"
    if name not in pdfmetrics.getRegisteredFontNames():
        try:
            pdfmetrics.registerFont(TTFont(name, BytesIO(data)))
        except TTFError as exc:
            raise RenderError(f"invalid font data for {family}: {exc}") from exc
    return name


def build_font_set(regular: Optional[bytes], bold: Optional[bytes]) -> FontSet:
    base = FontSet()
    script = register_ttf("Script", regular) if regular else base.script
    if bold:
        script_bold = register_ttf("ScriptBold", bold)
    elif regular:
        script_bold = script
    else:
        script_bold = base.script_bold
    return FontSet(
        latin=base.latin,
        latin_bold=base.latin_bold,
        script=script,
        script_bold=script_bold,
    )


def measure(text: str, font: str, size: float) -> float:
    return pdfmetrics.stringWidth(text, font, size)
