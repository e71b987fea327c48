"""Line-preserving chunking policies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from rag_pipeline.config import ChunkingConfig

_FULL_WIDTH_SPACE = "\u3000"
_BOM = "\ufeff"


def normalize_text(text: str) -> str:
    """Strip formatting artifacts that carry no meaning for retrieval."""
    if text.startswith(_BOM):
        text = text[1:]
    return text.replace(_FULL_WIDTH_SPACE, "")


class Chunker(ABC):
    """Splits decoded text into ordered, non-empty chunks."""

    @abstractmethod
    def split(self, text: str) -> list[str]:
        """Return chunks in document order."""


class BufferedLineChunker(Chunker):
    """Accumulates whole lines into a buffer until a size budget is reached.

    Lines keep their line endings and a whitespace-only buffer is carried
    into the next chunk (or appended to the last one at the end of the text),
    so whenever any chunk is returned their concatenation reproduces the text
    exactly. Text that is entirely whitespace yields no chunks. A line is
    never split: one line longer than the budget becomes a chunk of its own,
    possibly together with the lines buffered before it.
    """

    def __init__(self, budget: int = 700, unit: Literal["bytes", "chars"] = "bytes") -> None:
        if budget < 1:
            raise ValueError("budget must be positive")
        self.budget = budget
        self.unit = unit

    @classmethod
    def from_config(cls, config: ChunkingConfig) -> "BufferedLineChunker":
        return cls(budget=config.text_budget, unit=config.text_budget_unit)

    def split(self, text: str) -> list[str]:
        chunks: list[str] = []
        buffer: list[str] = []
        size = 0

        for line in text.splitlines(keepends=True):
            buffer.append(line)
            size += self._measure(line)
            if size >= self.budget and not line.isspace():
                chunks.append("".join(buffer))
                buffer = []
                size = 0

        tail = "".join(buffer)
        if tail.strip():
            chunks.append(tail)
        elif tail and chunks:
            chunks[-1] += tail
        return chunks

    def _measure(self, line: str) -> int:
        if self.unit == "bytes":
            return len(line.encode("utf-8"))
        return len(line)


class LineGroupChunker(Chunker):
    """Groups a fixed number of non-empty lines per chunk."""

    def __init__(self, lines_per_chunk: int = 10, separator: str = "\r\n") -> None:
        if lines_per_chunk < 1:
            raise ValueError("lines_per_chunk must be positive")
        self.lines_per_chunk = lines_per_chunk
        self.separator = separator

    @classmethod
    def from_config(cls, config: ChunkingConfig) -> "LineGroupChunker":
        return cls(lines_per_chunk=config.lines_per_chunk, separator=config.line_separator)

    def split(self, text: str) -> list[str]:
        lines = [line for line in text.splitlines() if line.strip()]
        return [
            self.separator.join(lines[start : start + self.lines_per_chunk])
            for start in range(0, len(lines), self.lines_per_chunk)
        ]
