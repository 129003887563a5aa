from __future__ import annotations

import asyncio

import pytest

from mission_orders.core.errors import AssetUnavailable, RenderError
from mission_orders.services.render.assets import AssetCache
from mission_orders.services.render.fonts import FontSet, build_font_set
from mission_orders.services.render.layout import (
    DirectionalRun,
    layout_runs,
    order_number_runs,
    prepare_text,
    visual_order,
    wrap_text,
)
from mission_orders.services.render.merge import merge_documents, page_count
from mission_orders.services.render.renderer import render


def char_width(text, font, size):
    return len(text) * size


FIELDS = {
    "name": "Karim Benali",
    "position": "Arbitre Central",
    "administrative_headquarters": "Oran",
    "mission_location": "Stade Ahmed Zabana, Oran",
    "departure_date": "2025-03-14T15:00:00",
    "return_date": "2025-03-14T15:00:00",
    "mission_timing": "15:00:00",
    "mission_type": "Arbitre Central : MC Oran contre ASM Oran",
    "language": "fr",
    "order_number": "42",
    "issued_on": "2025-03-01",
}


def test_visual_order_keeps_latin_runs():
    assert visual_order("plain text") == "plain text"
    assert visual_order("رقم 12") == "12 " + "رقم"[::-1]
    assert visual_order("ملعب 5-Juillet") == "5-Juillet " + "ملعب"[::-1]


def test_visual_order_mirrors_brackets():
    assert visual_order("السيد(ة)") == "(ة)" + "السيد"[::-1]


def test_prepare_text_leaves_latin_alone_in_ltr():
    assert prepare_text("Date de départ", "ltr") == "Date de départ"
    assert prepare_text("", "rtl") == ""


def test_wrap_text_is_greedy():
    assert wrap_text("aa bb cc", 5, "F", 1, char_width) == ["aa bb", "cc"]
    assert wrap_text("averyveryverylongword x", 5, "F", 1, char_width) == [
        "averyveryverylongword",
        "x",
    ]
    assert wrap_text("", 5, "F", 1, char_width) == []


def test_layout_runs_centers_segments():
    placed = layout_runs(
        [DirectionalRun("ab", "A", 1), DirectionalRun("cde", "B", 1)], 10, char_width
    )
    assert [(run.text, run.x, run.width) for run in placed] == [
        ("ab", 7.5, 2),
        ("cde", 9.5, 3),
    ]


def test_order_number_runs_visual_order():
    rtl = order_number_runs("رقم", "7", " /ا.ع/", "2025", "S", "L", 11, "rtl")
    assert [run.text for run in rtl][0] == "2025"
    assert rtl[2].text == " 7 "
    assert [run.font for run in rtl] == ["L", "S", "L", "S"]
    ltr = order_number_runs("N°", "7", "/A.G/", "2025", "L", "L", 11, "ltr")
    assert [run.text for run in ltr] == ["N°:", " 7 ", "/A.G/", "2025"]


def test_render_is_deterministic():
    first = render(FIELDS, "ltr", {}, "https://orders.example.com/verify/abc")
    second = render(dict(FIELDS), "ltr", {}, "https://orders.example.com/verify/abc")
    assert first.startswith(b"%PDF")
    assert first == second
    assert first != render(FIELDS, "ltr", {}, "https://orders.example.com/verify/xyz")


def test_render_rtl_with_fallback_fonts():
    fields = dict(FIELDS, name="كريم بن علي", language="ar")
    assert page_count(render(fields, "rtl", {}, "https://x/verify/1", FontSet())) == 1


def test_render_rejects_broken_images():
    with pytest.raises(RenderError):
        render(FIELDS, "ltr", {"logo": b"not an image"}, "https://x/verify/1")


def test_merge_documents_concatenates_pages():
    page = render(FIELDS, "ltr", {}, "https://x/verify/1")
    assert page_count(merge_documents([page, page, page])) == 3
    with pytest.raises(RenderError):
        merge_documents([])


def test_font_set_falls_back_to_helvetica():
    assert build_font_set(None, None) == FontSet()
    with pytest.raises(RenderError):
        build_font_set(b"not a font", None)


def test_asset_cache_fetches_once():
    calls = []

    async def fetcher(location: str) -> bytes:
        calls.append(location)
        await asyncio.sleep(0)
        return b"bytes:" + location.encode()

    cache = AssetCache(fetcher)

    async def scenario():
        return await asyncio.gather(*(cache.get("logo.png") for _ in range(5)))

    results = asyncio.run(scenario())
    assert results == [b"bytes:logo.png"] * 5
    assert calls == ["logo.png"]
    assert "logo.png" in cache
    assert asyncio.run(cache.get_optional(None)) is None


def test_asset_cache_wraps_fetch_errors():
    async def fetcher(location: str) -> bytes:
        raise OSError("missing")

    cache = AssetCache(fetcher)
    with pytest.raises(AssetUnavailable):
        asyncio.run(cache.get("stamp.png"))
    assert "stamp.png" not in cache
