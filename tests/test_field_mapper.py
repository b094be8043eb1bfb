from decimal import Decimal

import pytest

from sync_worker.adapters.base import RawProductRecord
from sync_worker.mapping.field_mapper import FieldMapper, MappingError, map_record, validate_mapping
from sync_worker.mapping.paths import MISSING, PathSyntaxError, parse_path, resolve_path

from helpers import MAPPING, product


def test_parse_path_accepts_brackets_and_dots():
    assert parse_path("images[0].src") == ["images", "0", "src"]
    assert parse_path("variants.1.price") == ["variants", "1", "price"]


@pytest.mark.parametrize("path", ["", "a..b", "a[x]", "a]", ".a"])
def test_parse_path_rejects_malformed(path):
    with pytest.raises(PathSyntaxError):
        parse_path(path)


def test_resolve_path_walks_nested_values():
    record = {"variants": [{"price": "10"}, {"price": "12"}], "images": [{"src": "a.jpg"}]}
    assert resolve_path(record, "variants.1.price") == "12"
    assert resolve_path(record, "images[0].src") == "a.jpg"
    assert resolve_path(record, "images[3].src") is MISSING
    assert resolve_path(record, "variants.first") is MISSING


def test_resolve_path_prefers_flat_key():
    record = {"images.0.src": "flat.jpg", "images": [{"src": "nested.jpg"}]}
    assert resolve_path(record, "images.0.src") == "flat.jpg"


def test_map_full_record():
    result = map_record(RawProductRecord(data=product("A1", amount="$1,299.50")), MAPPING)

    assert not isinstance(result, MappingError)
    assert result.sku == "A1"
    assert result.title == "Widget"
    assert result.description == "A useful widget"
    assert result.price == Decimal("1299.50")
    assert result.image_url == "https://cdn.example.com/A1.jpg"
    assert result.category == "tools"


def test_numeric_sku_becomes_text():
    result = map_record(RawProductRecord(data=product(1001)), MAPPING)
    assert result.sku == "1001"


def test_missing_required_field_reports_path_and_sku():
    record = product("A2")
    del record["details"]
    result = map_record(RawProductRecord(data=record), MAPPING)

    assert isinstance(result, MappingError)
    assert result.sku == "A2"
    assert result.stage == "mapping"
    assert "description" in result.message
    assert "details.text" in result.message


def test_blank_title_is_missing():
    result = map_record(RawProductRecord(data=product("A3", name="   ")), MAPPING)
    assert isinstance(result, MappingError)
    assert "title" in result.message


def test_missing_optional_fields_are_null():
    record = {"id": "A4", "name": "Bare", "details": {"text": "Nothing else"}}
    result = map_record(RawProductRecord(data=record), MAPPING)

    assert result.price is None
    assert result.image_url is None
    assert result.category is None


def test_unparseable_price_is_null():
    result = map_record(RawProductRecord(data=product("A5", amount="call us")), MAPPING)
    assert result.price is None


@pytest.mark.parametrize("amount", ["1e20", "123456789012345", 99999999999])
def test_price_beyond_storable_range_is_null(amount):
    result = map_record(RawProductRecord(data=product("A7", amount=amount)), MAPPING)
    assert result.price is None


def test_largest_storable_price_is_kept():
    result = map_record(RawProductRecord(data=product("A8", amount="9999999999.99")), MAPPING)
    assert result.price == Decimal("9999999999.99")


def test_extra_mapping_keys_land_in_metadata():
    mapper = FieldMapper({**MAPPING, "brand": "vendor.name", "imageUrl": "images[0].src"})
    result = mapper.map(RawProductRecord(data=product("A6", vendor={"name": "Acme"})))

    assert result.metadata == {"brand": "Acme"}
    assert result.image_url == "https://cdn.example.com/A6.jpg"


def test_validate_mapping_requires_core_fields():
    problems = validate_mapping({"sku": "id", "title": "name"})
    assert problems == ["field_mapping must include a source path for 'description'"]


def test_validate_mapping_reports_bad_paths():
    problems = validate_mapping({**MAPPING, "price": "pricing..amount"})
    assert len(problems) == 1
    assert problems[0].startswith("field_mapping.price")
