"""Text splitting strategies.

The recursive splitter tries coarse separators first (paragraphs), then
progressively finer ones (sentences, words, characters), and greedily merges
the resulting pieces back into fragments that fit the token budget.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from itertools import pairwise
from typing import Optional, Union

from .base import BaseTextSplitter, BaseTokenizer
from .exceptions import FragmentTooLargeError, InvalidConfigurationError, UnexpectedOverlapError
from .span import Fragment
from .tokenizers import CharacterTokenizer

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


@dataclass(frozen=True)
class ChunkingConfig:
    """Token budgets for a text splitter.

    Attributes:
        maximum_fragment_size: Maximum tokens per fragment, None for no limit
        maximum_fragment_overlap: Tokens carried from one fragment into the
            next. None means unset, which behaves as 0 and additionally
            forbids overlapping fragments.
        tokenizer: Token counter used for all budget arithmetic
    """

    maximum_fragment_size: Optional[int] = None
    maximum_fragment_overlap: Optional[int] = None
    tokenizer: BaseTokenizer = field(default_factory=CharacterTokenizer)

    def __post_init__(self) -> None:
        size = self.maximum_fragment_size
        overlap = self.maximum_fragment_overlap
        if size is not None and size < 0:
            raise InvalidConfigurationError(f"maximum_fragment_size must be >= 0, got {size}")
        if overlap is not None and overlap < 0:
            raise InvalidConfigurationError(f"maximum_fragment_overlap must be >= 0, got {overlap}")
        if size is not None and overlap is not None and size <= overlap:
            raise InvalidConfigurationError(
                f"maximum_fragment_size ({size}) must be greater than "
                f"maximum_fragment_overlap ({overlap})"
            )

    @property
    def effective_overlap(self) -> int:
        return self.maximum_fragment_overlap or 0

    def count(self, text: str) -> int:
        return self.tokenizer.count(text)


@dataclass(frozen=True)
class _Pending:
    """A piece still over budget, to be split with separators from ``start`` on."""

    fragment: Fragment
    start: int


class RecursiveTextSplitter(BaseTextSplitter):
    """Recursively split text using a hierarchy of separators.

    Splitting is a pure function of the text, the configuration and the
    separators, so one splitter may be shared between threads.
    """

    def __init__(
        self,
        configuration: Optional[ChunkingConfig] = None,
        separators: Optional[list[str]] = None,
    ):
        """Initialize the recursive splitter.

        Args:
            configuration: Token budgets (default: no size limit)
            separators: Separators to try, highest priority first. The empty
                string always ends the hierarchy, whether listed or not.
        """
        self._configuration = configuration or ChunkingConfig()
        self.separators = list(DEFAULT_SEPARATORS if separators is None else separators)

    @property
    def configuration(self) -> ChunkingConfig:
        return self._configuration

    def split(self, text: str) -> list[Fragment]:
        """Split text into fragments that each fit the token budget.

        Raises:
            FragmentTooLargeError: If some piece cannot be brought under budget
            UnexpectedOverlapError: If fragments overlap although no overlap
                was configured
        """
        if not text.strip():
            return []

        source = Fragment.from_source(text)
        maximum = self._configuration.maximum_fragment_size
        if maximum is None or self._configuration.count(text) <= maximum:
            return [source]

        result: list[Fragment] = []
        work: deque[Union[Fragment, _Pending]] = deque([_Pending(source, 0)])
        while work:
            item = work.popleft()
            if isinstance(item, Fragment):
                result.append(item)
            else:
                work.extendleft(reversed(self._split_pending(item, maximum)))

        self.validate(result)
        logger.debug(f"Split {len(text)} characters into {len(result)} fragments")
        return result

    def validate(self, fragments: list[Fragment]) -> None:
        """Check a finished split against the configuration."""
        maximum = self._configuration.maximum_fragment_size
        if maximum is None:
            return

        for fragment in fragments:
            size = self._configuration.count(fragment.text)
            if size > maximum:
                raise FragmentTooLargeError(size, maximum)

        if self._configuration.maximum_fragment_overlap is None:
            for first, second in pairwise(fragments):
                if first.span.first.overlaps(second.span.first):
                    raise UnexpectedOverlapError(first, second)

    def _best_separator(self, fragment: Fragment, start: int) -> tuple[str, int]:
        """Return the first separator from ``start`` on that occurs in ``fragment``."""
        for index in range(start, len(self.separators)):
            separator = self.separators[index]
            if not separator or fragment.contains(separator):
                return separator, index
        return "", len(self.separators)

    def _split_pending(self, pending: _Pending, maximum: int) -> list[Union[Fragment, _Pending]]:
        count = self._configuration.count
        separator, index = self._best_separator(pending.fragment, pending.start)
        joiner = separator[len(separator.rstrip()):]
        joiner_size = count(joiner) if joiner else 0

        components = [
            component.trimmed()
            for component in pending.fragment.components_separated_by(separator)
        ]

        output: list[Union[Fragment, _Pending]] = []
        run: list[tuple[Fragment, int]] = []
        total = 0
        fresh = False

        for component in components:
            if component.is_empty:
                continue
            size = count(component.text)

            if size > maximum:
                if fresh:
                    output.append(self._merge(run, joiner))
                run, total, fresh = [], 0, False
                if separator:
                    output.append(_Pending(component, index + 1))
                else:
                    # A single character over budget; validation reports it.
                    output.append(component)
                continue

            if run and total + joiner_size + size > maximum:
                if fresh:
                    output.append(self._merge(run, joiner))
                run, total = self._retain_overlap(run, size, joiner_size, maximum)
                fresh = False

            total += size + (joiner_size if run else 0)
            run.append((component, size))
            fresh = True

        if fresh:
            output.append(self._merge(run, joiner))
        return output

    def _retain_overlap(
        self,
        run: list[tuple[Fragment, int]],
        next_size: int,
        joiner_size: int,
        maximum: int,
    ) -> tuple[list[tuple[Fragment, int]], int]:
        """Drop leading pieces until the run fits the overlap budget and the next piece."""
        overlap = self._configuration.effective_overlap
        run = list(run)

        def run_total() -> int:
            return sum(size for _, size in run) + joiner_size * max(len(run) - 1, 0)

        total = run_total()
        while run and (total > overlap or total + joiner_size + next_size > maximum):
            run.pop(0)
            total = run_total()
        return run, total

    @staticmethod
    def _merge(run: list[tuple[Fragment, int]], joiner: str) -> Fragment:
        return Fragment.joined((fragment for fragment, _ in run), joiner)


class NoTextSplitter(BaseTextSplitter):
    """A splitter that never splits: the whole text becomes one fragment."""

    def __init__(self) -> None:
        self._configuration = ChunkingConfig(maximum_fragment_size=None, maximum_fragment_overlap=None)

    @property
    def configuration(self) -> ChunkingConfig:
        return self._configuration

    def split(self, text: str) -> list[Fragment]:
        if not text.strip():
            return []
        return [Fragment.from_source(text)]
