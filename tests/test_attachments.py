import base64

import pytest

from gemcord.attachments import data_uri_part, encode_data_uri, parse_data_uri


def test_encode_data_uri_strips_mime_parameters():
    uri = encode_data_uri(b"hello", "text/plain; charset=utf-8")
    assert uri == "data:text/plain;base64," + base64.b64encode(b"hello").decode()


def test_encode_data_uri_defaults_mime_type():
    assert encode_data_uri(b"\x00", None).startswith("data:application/octet-stream;base64,")


def test_parse_data_uri_returns_inline_data():
    inline = parse_data_uri(encode_data_uri(b"%PDF-1.7", "application/pdf"))
    assert inline.mime_type == "application/pdf"
    assert base64.b64decode(inline.data) == b"%PDF-1.7"


@pytest.mark.parametrize(
    "uri",
    [
        "hello",
        "data:;base64,aGVsbG8=",
        "data:text/plain,hello",
        "data:text/plain;base64,not*base64",
    ],
)
def test_parse_data_uri_rejects_malformed_input(uri):
    with pytest.raises(ValueError):
        parse_data_uri(uri)


def test_data_uri_part_wire_shape():
    part = data_uri_part("data:image/png;base64,iVBORw0KGgo=")
    assert part.to_wire() == {"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}}
