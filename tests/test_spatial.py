import math

import pytest
from sqlalchemy.dialects import postgresql

from app.services.spatial import BBox, _escape_like, build_map_query, encode_point, normalize_search, parse_bbox


# named paramstyle keeps literal % signs undoubled
def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect(paramstyle="named"), compile_kwargs={"literal_binds": True}))


def test_encode_point_is_lng_lat():
    sql = _sql(encode_point(lat=-40.8135, lng=-62.9967))
    assert "ST_MakePoint(-62.9967, -40.8135)" in sql
    assert "4326" in sql


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("-63.5,-41,-62.5,-40.5", BBox(-63.5, -41.0, -62.5, -40.5)),
        (" -63.5 , -41 , -62.5 , -40.5 ", BBox(-63.5, -41.0, -62.5, -40.5)),
        ("-63.5,-41,-62.5", None),
        ("-63.5,-41,-62.5,abc", None),
        ("-63.5,-41,-62.5,nan", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_bbox(raw, expected):
    assert parse_bbox(raw) == expected


def test_partial_bounds_mean_no_box():
    assert BBox.from_bounds(-63.5, -41.0, -62.5, None) is None
    assert BBox.from_bounds(-63.5, -41.0, math.inf, -40.5) is None


def test_map_query_only_published_ordered_and_capped():
    sql = _sql(build_map_query())
    assert "listings.status = 'published'" in sql
    assert "ORDER BY listings.id ASC" in sql
    assert "LIMIT 50" in sql
    assert "ST_Y(listings.location)" in sql
    assert "ST_X(listings.location)" in sql
    assert "coalesce(categories.marker_icon_slug, 'default-pin')" in sql
    assert "&&" not in sql


def test_map_query_bbox_uses_envelope_overlap():
    sql = _sql(build_map_query(bbox=BBox(-63.5, -41.0, -62.5, -40.5)))
    assert "&&" in sql
    assert "ST_MakeEnvelope(-63.5, -41.0, -62.5, -40.5, 4326)" in sql


def test_map_query_bbox_normalizes_inverted_latitudes():
    sql = _sql(build_map_query(bbox=BBox(-63.5, -40.5, -62.5, -41.0)))
    assert "ST_MakeEnvelope(-63.5, -41.0, -62.5, -40.5, 4326)" in sql


def test_map_query_bbox_with_swapped_longitudes_is_one_rectangle():
    sql = _sql(build_map_query(bbox=BBox(20.0, 0.0, 0.0, 20.0)))
    assert sql.count("ST_MakeEnvelope") == 1
    assert "ST_MakeEnvelope(0.0, 0.0, 20.0, 20.0, 4326)" in sql


@pytest.mark.parametrize("term,expected", [("ab", None), ("  ab ", None), (" Caf ", "Caf"), (None, None)])
def test_normalize_search_threshold(term, expected):
    assert normalize_search(term) == expected


def test_short_search_adds_no_filter():
    assert "ILIKE" not in _sql(build_map_query(search="ab"))


def test_search_is_case_insensitive_substring():
    sql = _sql(build_map_query(search="Caf"))
    assert "listings.title ILIKE '%Caf%'" in sql


def test_search_escapes_like_wildcards():
    assert _escape_like("50%_off") == "50\\%\\_off"
    assert "ESCAPE" in _sql(build_map_query(search="50%_off"))


def test_keyset_cursor_and_explicit_limit():
    sql = _sql(build_map_query(after="lst_abc", limit=10))
    assert "listings.id > 'lst_abc'" in sql
    assert "LIMIT 10" in sql


def test_limit_never_exceeds_map_cap():
    assert "LIMIT 50" in _sql(build_map_query(limit=500))
