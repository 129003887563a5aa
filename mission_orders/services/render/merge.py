from io import BytesIO
from typing import Sequence

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from mission_orders.core.errors import RenderError


def merge_documents(documents: Sequence[bytes]) -> bytes:
    """Concatenate the pages of ``documents`` in the order given."""
    if not documents:
        raise RenderError("nothing to merge")
    writer = PdfWriter()
    try:
        for data in documents:
            for page in PdfReader(BytesIO(data)).pages:
                writer.add_page(page)
    except PdfReadError as exc:
        raise RenderError(f"merge failed: {exc}") from exc
    out = BytesIO()
    writer.write(out)
    return out.getvalue()


def page_count(data: bytes) -> int:
    return len(PdfReader(BytesIO(data)).pages)
