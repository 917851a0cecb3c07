"""Span model: addressable sub-ranges of a document's text.

Positions are measured in UTF-16 code units so that spans stay stable regardless
of how the host language indexes strings.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from .exceptions import SpanResolutionError


def utf16_length(text: str) -> int:
    """Return the number of UTF-16 code units needed to encode ``text``."""
    return len(text) + sum(1 for char in text if ord(char) > 0xFFFF)


class TextRange(BaseModel):
    """A half-open ``[start, end)`` range of UTF-16 code units."""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int

    @model_validator(mode="after")
    def _check_bounds(self) -> "TextRange":
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid text range {self.start}..{self.end}")
        return self

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "TextRange") -> bool:
        return self.start < other.end and other.start < self.end

    def shifted(self, offset: int) -> "TextRange":
        return TextRange(start=self.start + offset, end=self.end + offset)

    def __lt__(self, other: "TextRange") -> bool:
        return self.start < other.start

    def __str__(self) -> str:
        return f"{self.start}..<{self.end}"


class Span(BaseModel):
    """An ordered sequence of non-overlapping ranges within one document.

    A span with several ranges addresses text that was reassembled from
    non-adjacent parts of the source.
    """

    model_config = ConfigDict(frozen=True)

    ranges: tuple[TextRange, ...] = ()

    @model_validator(mode="after")
    def _check_order(self) -> "Span":
        for previous, current in zip(self.ranges, self.ranges[1:]):
            if current.start < previous.end:
                raise ValueError(
                    f"Span ranges must be ordered and disjoint, got {previous} then {current}"
                )
        return self

    @classmethod
    def of(cls, *ranges: Union[TextRange, tuple[int, int]]) -> "Span":
        """Build a span from ranges or ``(start, end)`` pairs."""
        return cls(ranges=tuple(
            r if isinstance(r, TextRange) else TextRange(start=r[0], end=r[1])
            for r in ranges
        ))

    @property
    def first(self) -> Optional[TextRange]:
        return self.ranges[0] if self.ranges else None

    @property
    def last(self) -> Optional[TextRange]:
        return self.ranges[-1] if self.ranges else None

    @property
    def is_empty(self) -> bool:
        return not self.ranges

    def __add__(self, other: "Span") -> "Span":
        return Span(ranges=self.ranges + other.ranges)

    def __lt__(self, other: "Span") -> bool:
        if self.first is None or other.first is None:
            raise ValueError("Cannot order an empty span")
        return self.first.start < other.first.start

    def __len__(self) -> int:
        return len(self.ranges)

    def __str__(self) -> str:
        if self.first is None or self.last is None:
            return "<empty span>"
        return f"{self.first.start}..<{self.last.end} (utf-16)"


def range_for(substring: str, parent: str, start: int = 0) -> TextRange:
    """Return the UTF-16 range of ``substring`` within ``parent``.

    The first occurrence at or after the Python index ``start`` is used.
    """
    index = parent.find(substring, start)
    if index < 0:
        raise SpanResolutionError(f"{substring!r} does not occur in the parent text")
    lower = utf16_length(parent[:index])
    return TextRange(start=lower, end=lower + utf16_length(substring))


def resolve(span: Span, text: str) -> str:
    """Return the text denoted by ``span`` within ``text``.

    Raises:
        SpanResolutionError: If the span is empty, a range lies outside the
            text, or a range boundary splits a surrogate pair.
    """
    if span.is_empty:
        raise SpanResolutionError("Cannot resolve an empty span")

    encoded = text.encode("utf-16-le")
    units = len(encoded) // 2
    parts = []
    for text_range in span.ranges:
        if text_range.end > units:
            raise SpanResolutionError(
                f"Range {text_range} is out of bounds for a text of {units} UTF-16 units"
            )
        try:
            parts.append(encoded[2 * text_range.start:2 * text_range.end].decode("utf-16-le"))
        except UnicodeDecodeError as e:
            raise SpanResolutionError(
                f"Range {text_range} does not fall on character boundaries"
            ) from e
    return "".join(parts)


# ---------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class SourceText:
    """Text taken verbatim from the source at ``range``."""

    range: TextRange
    text: str

    def split(self, separator: str) -> list["SourceText"]:
        pieces = _pieces(self.text, separator)
        result = []
        offset = self.range.start
        for piece in pieces:
            length = utf16_length(piece)
            result.append(SourceText(TextRange(start=offset, end=offset + length), piece))
            offset += length
        return result

    def lstrip(self) -> Optional["SourceText"]:
        stripped = self.text.lstrip()
        if not stripped:
            return None
        removed = utf16_length(self.text[:len(self.text) - len(stripped)])
        return SourceText(TextRange(start=self.range.start + removed, end=self.range.end), stripped)

    def rstrip(self) -> Optional["SourceText"]:
        stripped = self.text.rstrip()
        if not stripped:
            return None
        removed = utf16_length(self.text[len(stripped):])
        return SourceText(TextRange(start=self.range.start, end=self.range.end - removed), stripped)


@dataclass(frozen=True)
class InsertedText:
    """Synthetic text that does not occur at this position in the source."""

    text: str

    def split(self, separator: str) -> list["InsertedText"]:
        return [InsertedText(piece) for piece in _pieces(self.text, separator)]

    def lstrip(self) -> Optional["InsertedText"]:
        stripped = self.text.lstrip()
        return InsertedText(stripped) if stripped else None

    def rstrip(self) -> Optional["InsertedText"]:
        stripped = self.text.rstrip()
        return InsertedText(stripped) if stripped else None


Component = Union[SourceText, InsertedText]


def _pieces(text: str, separator: str) -> list[str]:
    # The separator stays attached to the end of the piece it terminates.
    if not separator:
        return list(text)
    pieces = []
    position = 0
    while True:
        index = text.find(separator, position)
        if index < 0:
            break
        end = index + len(separator)
        pieces.append(text[position:end])
        position = end
    if position < len(text) or not pieces:
        pieces.append(text[position:])
    return pieces


@dataclass(frozen=True)
class Fragment:
    """A piece of document text together with its provenance.

    Attributes:
        components: Source and inserted text, in reading order
    """

    components: tuple[Component, ...] = ()

    @classmethod
    def from_source(cls, text: str) -> "Fragment":
        """Create a fragment covering all of ``text``."""
        return cls((SourceText(TextRange(start=0, end=utf16_length(text)), text),))

    @classmethod
    def inserted(cls, text: str) -> "Fragment":
        return cls((InsertedText(text),))

    @classmethod
    def joined(cls, fragments: Iterable["Fragment"], separator: str = "") -> "Fragment":
        """Concatenate fragments, inserting ``separator`` between them."""
        components: list[Component] = []
        for index, fragment in enumerate(fragments):
            if index and separator:
                components.append(InsertedText(separator))
            components.extend(fragment.components)
        return cls(tuple(components))

    @property
    def text(self) -> str:
        """The effective text, including inserted components."""
        return "".join(component.text for component in self.components)

    @property
    def span(self) -> Span:
        """The source ranges this fragment was built from."""
        return Span(ranges=tuple(
            component.range
            for component in self.components
            if isinstance(component, SourceText)
        ))

    @property
    def is_empty(self) -> bool:
        return not self.text

    def contains(self, text: str) -> bool:
        return any(text in component.text for component in self.components)

    def components_separated_by(self, separator: str) -> list["Fragment"]:
        """Split every component at ``separator``.

        Each occurrence of the separator is kept at the end of the piece it
        terminates; an empty separator splits into single characters.
        """
        return [
            Fragment((piece,))
            for component in self.components
            for piece in component.split(separator)
        ]

    def trimmed(self) -> "Fragment":
        """Strip surrounding whitespace, keeping source ranges exact."""
        components = list(self.components)
        while components:
            head = components[0].lstrip()
            if head is not None:
                components[0] = head
                break
            components.pop(0)
        while components:
            tail = components[-1].rstrip()
            if tail is not None:
                components[-1] = tail
                break
            components.pop()
        return Fragment(tuple(components))

    def __add__(self, other: Union["Fragment", str]) -> "Fragment":
        if isinstance(other, str):
            other = Fragment.inserted(other)
        return Fragment(self.components + other.components)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        preview = self.text[:30] + "..." if len(self.text) > 30 else self.text
        return f"Fragment(span={str(self.span)!r}, text={preview!r})"
