import json

import pytest

from sync_worker.adapters.file_upload import FileAdapter, infer_format
from sync_worker.errors import SourceError, ValidationError


def test_csv_rows_become_records():
    content = b"\xef\xbb\xbfid,name,details.text\nA1,Widget,Useful\nA2,Gadget,Shiny\n"
    result = FileAdapter(content, "csv").fetch()

    assert [record.data["id"] for record in result.records] == ["A1", "A2"]
    assert result.records[0].data["details.text"] == "Useful"
    assert result.records[1].source_ref == "line 3"
    assert result.errors == []


def test_csv_wrong_field_count_is_a_record_error():
    content = b"id,name,details.text\nA1,Widget,Useful\nA2,Gadget\nA3,Thing,Fine\n"
    result = FileAdapter(content, "csv").fetch()

    assert [record.data["id"] for record in result.records] == ["A1", "A3"]
    assert result.total == 3
    assert result.errors[0].stage == "parse"
    assert result.errors[0].message == "line 3: expected 3 fields, got 2"


def test_csv_broken_quoting_is_a_record_error():
    content = b'id,name,details.text\nA1,"Wid"get,Useful\nA2,Gadget,Shiny\n'
    result = FileAdapter(content, "csv").fetch()

    assert [record.data["id"] for record in result.records] == ["A2"]
    assert result.errors[0].stage == "parse"


def test_csv_blank_rows_are_ignored():
    content = b"id,name,details.text\n\nA1,Widget,Useful\n,,\n"
    result = FileAdapter(content, "csv").fetch()

    assert len(result.records) == 1
    assert result.errors == []


@pytest.mark.parametrize("content", [b"", b"id,id\nA,B\n"])
def test_csv_unusable_header_fails_the_file(content):
    with pytest.raises(SourceError):
        FileAdapter(content, "csv").fetch()


def test_json_array_with_bad_items():
    content = json.dumps([{"id": "A1"}, "oops", {"id": "A2"}]).encode()
    result = FileAdapter(content, "json").fetch()

    assert [record.data["id"] for record in result.records] == ["A1", "A2"]
    assert result.errors[0].message == "item 1: expected an object, got str"


def test_json_single_object_is_one_record():
    result = FileAdapter(b'{"id": "A1"}', "json").fetch()
    assert len(result.records) == 1


def test_json_wrapped_products_list():
    result = FileAdapter(b'{"products": [{"id": "A1"}, {"id": "A2"}]}', "json").fetch()
    assert len(result.records) == 2


@pytest.mark.parametrize("content", [b"{not json", b'"just a string"', b"\xff\xfe\x00"])
def test_unparseable_json_fails_the_file(content):
    with pytest.raises(SourceError):
        FileAdapter(content, "json").fetch()


def test_unknown_format_rejected():
    with pytest.raises(ValidationError):
        FileAdapter(b"", "xml")


def test_infer_format():
    assert infer_format("catalog.CSV", None) == "csv"
    assert infer_format("upload", "application/json; charset=utf-8") == "json"
    assert infer_format("catalog.xlsx", "application/octet-stream") is None
