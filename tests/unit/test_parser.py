from pathlib import Path

import pytest

from rag_pipeline.config import ChunkingConfig
from rag_pipeline.errors import EncodingError
from rag_pipeline.ingest.parser import ParserRegistry, decode_source


def test_decode_prefers_utf8_then_falls_back_to_gb18030() -> None:
    text = "数据治理要求加密存储"

    assert decode_source(text.encode("utf-8")) == text
    assert decode_source(text.encode("gb18030")) == text


def test_decode_never_substitutes_replacement_characters() -> None:
    with pytest.raises(EncodingError) as excinfo:
        decode_source(b"abc\xff\xfe\xff")

    assert excinfo.value.encodings == ["utf-8", "gb18030"]


def test_declared_encoding_is_the_only_attempt() -> None:
    with pytest.raises(EncodingError):
        decode_source("café".encode("utf-8"), encoding="ascii")

    with pytest.raises(EncodingError):
        decode_source(b"plain", encoding="no-such-codec")


def test_registry_picks_parser_by_extension(tmp_path: Path) -> None:
    registry = ParserRegistry(config=ChunkingConfig(text_budget=20, lines_per_chunk=2))
    source = tmp_path / "notes.md"
    source.write_text("# Title\nfirst\n\nsecond\nthird\n", encoding="utf-8")

    document = registry.parse_path(source, doc_id="doc-md")

    assert document.document_id == "doc-md"
    assert document.name == "notes.md"
    assert document.chunks == ("# Title\r\nfirst", "second\r\nthird")


def test_parse_bytes_assigns_an_id_and_normalizes_text() -> None:
    registry = ParserRegistry()

    document = registry.parse_bytes("\ufeffhello\n".encode("utf-8"), name="a.txt")

    assert document.document_id
    assert document.chunks == ("hello\n",)


def test_unknown_extension_is_rejected() -> None:
    with pytest.raises(ValueError, match="No parser registered"):
        ParserRegistry().parse_bytes(b"data", name="report.pdf")
