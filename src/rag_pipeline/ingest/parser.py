"""Source decoding and parsers that turn raw files into chunked documents."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from rag_pipeline.config import ChunkingConfig
from rag_pipeline.errors import EncodingError
from rag_pipeline.ingest.chunker import (
    BufferedLineChunker,
    Chunker,
    LineGroupChunker,
    normalize_text,
)
from rag_pipeline.types import Document

logger = logging.getLogger(__name__)


def decode_source(
    raw: bytes,
    encoding: str | None = None,
    fallbacks: Sequence[str] = ("gb18030",),
) -> str:
    """Decode raw bytes without replacement characters.

    A declared encoding is the only one attempted. Without one, UTF-8 is tried
    first and then each fallback in order.
    """

    candidates = [encoding] if encoding else ["utf-8", *fallbacks]
    for candidate in candidates:
        try:
            return raw.decode(candidate)
        except UnicodeDecodeError:
            logger.debug("Source is not valid %s", candidate)
        except LookupError as exc:
            raise EncodingError(f"Unknown encoding: {candidate}", candidates) from exc
    raise EncodingError(
        f"Cannot decode source losslessly with any of {candidates}", candidates
    )


class Parser(ABC):
    """Base parser interface used by the ingest pipeline."""

    extensions: tuple[str, ...] = ()

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()
        self.chunker = self._build_chunker()

    @abstractmethod
    def _build_chunker(self) -> Chunker:
        """Return the chunking policy for this source type."""

    def parse(self, path: Path, *, doc_id: str | None = None) -> Document:
        return self.parse_bytes(path.read_bytes(), name=path.name, doc_id=doc_id)

    def parse_bytes(self, raw: bytes, *, name: str, doc_id: str | None = None) -> Document:
        text = decode_source(
            raw, self.config.source_encoding, self.config.fallback_encodings
        )
        chunks = self.chunker.split(normalize_text(text))
        logger.info("Parsed %s into %d chunks", name, len(chunks))
        return Document(
            document_id=doc_id or str(uuid.uuid4()),
            name=name,
            chunks=tuple(chunks),
        )


class TextParser(Parser):
    """Plain text: lines buffered up to a size budget."""

    extensions = (".txt", ".log")

    def _build_chunker(self) -> Chunker:
        return BufferedLineChunker.from_config(self.config)


class MarkdownParser(Parser):
    """Markdown and other line-structured sources: fixed line groups."""

    extensions = (".md", ".markdown")

    def _build_chunker(self) -> Chunker:
        return LineGroupChunker.from_config(self.config)


class ParserRegistry:
    """Maps file extension to parser implementation."""

    def __init__(
        self,
        parsers: list[Parser] | None = None,
        *,
        config: ChunkingConfig | None = None,
    ) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [TextParser(config), MarkdownParser(config)]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def parser_for(self, name: str) -> Parser:
        suffix = Path(name).suffix.lower()
        parser = self._parsers.get(suffix)
        if parser is None:
            raise ValueError(f"No parser registered for extension: {suffix}")
        return parser

    def parse_path(self, path: str | Path, *, doc_id: str | None = None) -> Document:
        file_path = Path(path)
        return self.parser_for(file_path.name).parse(file_path, doc_id=doc_id)

    def parse_bytes(self, raw: bytes, *, name: str, doc_id: str | None = None) -> Document:
        return self.parser_for(name).parse_bytes(raw, name=name, doc_id=doc_id)
