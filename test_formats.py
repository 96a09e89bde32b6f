#!/usr/bin/env python3
"""
End-to-end tests with real container formats.

Archives are built in memory with zipfile / tarfile / gzip and parsed by the
default AutoDetectParser, so these exercise detection, the package and
markup parsers, and the recursive wrapper together.
"""

import gzip
import hashlib
import io
import tarfile
import zipfile
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent))

import pytest

from recursive_parser import (
    AutoDetectParser,
    ContentParseFailure,
    HashlibDigester,
    Metadata,
    RecursiveParserWrapper,
    XMLParser,
    parse_bytes,
    parse_file,
)
from recursive_parser.metadata import (
    CONTENT,
    CONTENT_TYPE,
    CONTAINER_EXCEPTION,
    EMBEDDED_EXCEPTION,
    EMBEDDED_RESOURCE_PATH,
    RESOURCE_NAME,
)
from recursive_parser.parsers import Detector, ParseContext, decode_data_uri
from recursive_parser.sink import TextSink

HTML_PAGE = b"""<!DOCTYPE html>
<html>
<head>
  <title>Test Page</title>
  <meta name="Author" content="Page Author">
</head>
<body>
  <h1>Heading</h1>
  <p>Visible <a href="https://example.com">link</a></p>
  <script>var hidden = 1;</script>
  <img src="data:text/plain;base64,aGVsbG8gZnJvbSBpbWc=" data-filename="hello.txt">
  <img src="data:text/plain;base64,!!!not-base64!!!">
  <img src="https://example.com/remote.png">
  <iframe name="frame" srcdoc="&lt;p&gt;inside the frame&lt;/p&gt;"></iframe>
</body>
</html>"""


def make_zip(entries: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_STORED) as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def make_tar(entries: dict, mode: str = "w") -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as archive:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = 0
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def paths_of(records) -> list:
    return [record.get(EMBEDDED_RESOURCE_PATH) for record in records]


# --- Packages ---

def test_zip_inside_zip():
    inner = make_zip({"deep.txt": b"deep text"})
    outer = make_zip({"first.txt": b"first text", "inner.zip": inner, "last.txt": b"last text"})

    records = parse_bytes(outer, "outer.zip")

    assert paths_of(records) == [None, "/first.txt", "/inner.zip", "/inner.zip/deep.txt", "/last.txt"]
    assert records[0].get(CONTENT_TYPE) == "application/zip"
    assert records[2].get(CONTENT_TYPE) == "application/zip"
    assert records[3].get(CONTENT_TYPE) == "text/plain"
    assert "deep text" in records[3].get(CONTENT)
    assert records[1].get("size") == "10"
    # Entry names are listed in the container's own content
    assert "first.txt" in records[0].get(CONTENT)


def test_tar_entries():
    data = make_tar({"docs/a.txt": b"alpha", "docs/b.txt": b"beta"})
    records = parse_bytes(data, "bundle.tar")

    assert records[0].get(CONTENT_TYPE) == "application/x-tar"
    assert paths_of(records) == [None, "/docs/a.txt", "/docs/b.txt"]
    assert records[1].get("last_modified") == "1970-01-01T00:00:00+00:00"
    assert "beta" in records[2].get(CONTENT)


def test_tar_gz_entries():
    data = make_tar({"x.txt": b"compressed entry"}, mode="w:gz")
    records = parse_bytes(data, "bundle.tar.gz")

    assert records[0].get(CONTENT_TYPE) == "application/x-tar"
    assert paths_of(records) == [None, "/x.txt"]
    assert "compressed entry" in records[1].get(CONTENT)


def test_plain_gzip_is_one_embedded_resource():
    data = gzip.compress(b"just some gzipped text")
    records = parse_bytes(data, "notes.txt.gz")

    assert records[0].get(CONTENT_TYPE) == "application/gzip"
    assert paths_of(records) == [None, "/notes.txt"]
    assert "just some gzipped text" in records[1].get(CONTENT)


def test_corrupt_zip_entry_is_skipped():
    data = make_zip({"good.txt": b"good data", "bad.txt": b"bad data here", "after.txt": b"after data"})
    # Stored entries: flipping payload bytes breaks only the CRC of bad.txt
    data = data.replace(b"bad data here", b"BAD data here")

    records = parse_bytes(data, "damaged.zip")

    assert paths_of(records) == [None, "/good.txt", "/after.txt"]
    assert all(EMBEDDED_EXCEPTION not in record for record in records)


def test_embedded_package_failure_is_contained():
    truncated = make_zip({"a.txt": b"a"})[:12]
    outer = make_zip({"broken.zip": truncated, "ok.txt": b"ok"})

    records = parse_bytes(outer, "outer.zip")

    assert paths_of(records) == [None, "/broken.zip", "/ok.txt"]
    assert records[1].get(EMBEDDED_EXCEPTION).startswith("ContentParseFailure")
    assert EMBEDDED_EXCEPTION not in records[2]


def test_container_package_failure_propagates():
    truncated = make_zip({"a.txt": b"a"})[:12]
    with pytest.raises(ContentParseFailure) as excinfo:
        parse_bytes(truncated, "truncated.zip")

    assert excinfo.value.resource_name == "truncated.zip"
    records = excinfo.value.partial_result
    assert len(records) == 1
    assert CONTAINER_EXCEPTION in records[0]


def test_max_embedded_across_nested_archives():
    inner = make_zip({"i1.txt": b"1", "i2.txt": b"2"})
    outer = make_zip({"inner.zip": inner, "o.txt": b"o"})

    records = parse_bytes(outer, "outer.zip", max_embedded=2)

    assert paths_of(records) == [None, "/inner.zip", "/inner.zip/i1.txt"]
    assert records[0].get("embedded_resource_limit_reached") == "true"


def test_digests_of_archive_entries():
    entry = b"digest me" * 50
    outer = make_zip({"entry.bin.txt": entry})
    wrapper = RecursiveParserWrapper(digester=HashlibDigester(1024 * 1024, "md5", "sha1"))
    wrapper.parse(io.BytesIO(outer), Metadata({RESOURCE_NAME: "outer.zip"}))
    records = wrapper.get_results()

    assert records[0].get("digest_md5") == hashlib.md5(outer).hexdigest()
    assert records[1].get("digest_md5") == hashlib.md5(entry).hexdigest()
    assert records[1].get("digest_sha1") == hashlib.sha1(entry).hexdigest()


# --- HTML ---

def test_html_metadata_and_embedded_resources():
    records = parse_bytes(HTML_PAGE, "page.html")
    page = records[0]

    assert page.get(CONTENT_TYPE) == "text/html"
    assert page.get("title") == "Test Page"
    assert page.get("meta:author") == "Page Author"
    assert "Heading" in page.get(CONTENT)
    assert "Visible link" in page.get(CONTENT)
    assert "hidden" not in page.get(CONTENT)

    # Malformed and remote sources are not embedded resources
    assert paths_of(records) == [None, "/hello.txt", "/frame"]
    assert records[1].get(CONTENT).strip() == "hello from img"
    assert records[2].get(CONTENT_TYPE) == "text/html"
    assert "inside the frame" in records[2].get(CONTENT)


def test_html_inside_zip():
    outer = make_zip({"site/index.html": HTML_PAGE})
    records = parse_bytes(outer, "site.zip")

    assert paths_of(records) == [
        None,
        "/site/index.html",
        "/site/index.html/hello.txt",
        "/site/index.html/frame",
    ]


def test_unnamed_data_uri_gets_synthetic_name():
    page = b'<html><body><embed src="data:,plain%20payload"></body></html>'
    records = parse_bytes(page, "embed.html")

    assert paths_of(records) == [None, "/embed_0"]
    assert records[1].get(CONTENT_TYPE) == "text/plain"
    assert "plain payload" in records[1].get(CONTENT)


def test_default_handler_is_plain_text():
    records = parse_bytes(HTML_PAGE, "page.html", content_handler_factory=None)
    assert records[0].get(CONTENT).startswith("Test Page\n")


# --- XML, text and detection ---

def test_xml_parser():
    data = b"<?xml version='1.0'?><catalog><item>one</item><item>two</item></catalog>"
    metadata = Metadata()
    sink = TextSink()
    XMLParser().parse(io.BytesIO(data), sink, metadata, ParseContext())

    assert metadata.get("xml_root") == "catalog"
    assert metadata.get(CONTENT_TYPE) == "application/xml"
    assert sink.to_string() == "onetwo\n"


def test_xml_entities_are_not_expanded():
    data = (
        b"<?xml version='1.0'?>"
        b"<!DOCTYPE r [<!ENTITY ext SYSTEM 'file:///etc/passwd'>]>"
        b"<r>&ext;</r>"
    )
    records = parse_bytes(data, "entity.xml")
    assert "root:" not in (records[0].get(CONTENT) or "")


def test_text_with_bom():
    records = parse_bytes("\ufeffcafé".encode("utf-8"), "menu.txt")
    assert records[0].get(CONTENT) == "café\n"
    assert records[0].get(CONTENT_TYPE) == "text/plain"


def test_unknown_binary_gets_empty_content():
    records = parse_bytes(b"\x00\x01\x02\x03binary", "blob")
    assert records[0].get(CONTENT_TYPE) == "application/octet-stream"
    assert records[0].get(CONTENT) == ""


def test_declared_content_type_is_trusted():
    wrapper = RecursiveParserWrapper(parser=AutoDetectParser())
    wrapper.parse(io.BytesIO(b"<b>not html</b>"), Metadata({CONTENT_TYPE: "text/plain"}))
    assert wrapper.get_results()[0].get(CONTENT) == "<b>not html</b>\n"


@pytest.mark.parametrize("head, name, expected", [
    (b"PK\x03\x04rest", None, "application/zip"),
    (b"PK\x05\x06", None, "application/zip"),
    (b"\x1f\x8b\x08", None, "application/gzip"),
    (b"\xef\xbb\xbf<!DOCTYPE html><html>", None, "text/html"),
    (b"  <html><body>", None, "text/html"),
    (b"<?xml version='1.0'?><a/>", None, "application/xml"),
    (b"%PDF-1.7 \x00\x01", "report.pdf", "application/pdf"),
    (b"plain words", None, "text/plain"),
    (b"\x00\x00binary", None, "application/octet-stream"),
    (b"", None, "application/octet-stream"),
])
def test_detector(head, name, expected):
    assert Detector.detect(head, name) == expected


def test_detector_recognizes_tar():
    assert Detector.detect(make_tar({"a": b"a"})[:Detector.HEAD_SIZE]) == "application/x-tar"


def test_decode_data_uri():
    assert decode_data_uri("data:,hello%20world") == ("text/plain", b"hello world")
    assert decode_data_uri("data:image/PNG;base64,AAEC") == ("image/png", b"\x00\x01\x02")
    assert decode_data_uri("data:text/html;charset=utf-8,<p>") == ("text/html", b"<p>")

    with pytest.raises(ValueError):
        decode_data_uri("data:text/plain;base64")
    with pytest.raises(ValueError):
        decode_data_uri("data:;base64,@@@@")


# --- Convenience functions ---

def test_parse_file(tmp_path):
    path = tmp_path / "archive.zip"
    path.write_bytes(make_zip({"readme.txt": b"read me"}))

    records = parse_file(path, max_embedded=-1)

    assert records[0].get(RESOURCE_NAME) == "archive.zip"
    assert paths_of(records) == [None, "/readme.txt"]


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
