"""Tests for image data-URI helpers."""

import base64

import pytest

from guardian.core.errors import ValidationError
from guardian.core.io_utils import encode_image_file, to_data_uri

pytestmark = [pytest.mark.fast]


def test_bare_base64_gets_default_prefix():
    assert to_data_uri("AAAA") == "data:image/jpeg;base64,AAAA"


def test_surrounding_whitespace_is_stripped():
    assert to_data_uri("  AAAA\n") == "data:image/jpeg;base64,AAAA"


def test_line_wrapped_base64_is_accepted_and_compacted():
    raw = bytes(range(256)) * 2
    wrapped = base64.encodebytes(raw).decode()
    assert "\n" in wrapped.strip()

    uri = to_data_uri(wrapped)
    data = uri.split(",", 1)[1]
    assert uri.startswith("data:image/jpeg;base64,")
    assert "\n" not in data
    assert base64.b64decode(data, validate=True) == raw


def test_line_wrapped_data_uri_is_compacted():
    raw = bytes(range(200))
    uri = to_data_uri("data:image/png;base64," + base64.encodebytes(raw).decode())
    header, data = uri.split(",", 1)
    assert header == "data:image/png;base64"
    assert base64.b64decode(data, validate=True) == raw


def test_data_uri_is_kept():
    uri = "data:image/png;base64,AAAA"
    assert to_data_uri(uri) == uri


@pytest.mark.parametrize("image", [None, "", "   "])
def test_missing_image_raises(image):
    with pytest.raises(ValidationError, match="Missing image"):
        to_data_uri(image)


@pytest.mark.parametrize("image", [123, ["AAAA"], {"data": "AAAA"}])
def test_non_string_image_raises(image):
    with pytest.raises(ValidationError, match="must be a base64 string"):
        to_data_uri(image)


@pytest.mark.parametrize("image", ["not base64!", "data:image/png;base64,@@@@", "data:image/png;base64,", "data:nocomma"])
def test_malformed_image_raises(image):
    with pytest.raises(ValidationError):
        to_data_uri(image)


def test_encode_image_file_guesses_media_type(tmp_path):
    p = tmp_path / "shot.png"
    p.write_bytes(b"\x89PNG\r\n")
    uri = encode_image_file(p)
    assert uri.startswith("data:image/png;base64,")
    assert base64.b64decode(uri.split(",", 1)[1]) == b"\x89PNG\r\n"


def test_encode_image_file_unknown_extension_defaults_to_jpeg(tmp_path):
    p = tmp_path / "shot.bin"
    p.write_bytes(b"xyz")
    assert encode_image_file(p).startswith("data:image/jpeg;base64,")
