"""Tokenizer implementations used for fragment budgets."""

import logging

from .base import BaseTokenizer

logger = logging.getLogger(__name__)


class CharacterTokenizer(BaseTokenizer):
    """Counts every Unicode code point as one token."""

    def count(self, text: str) -> int:
        return len(text)

    def __repr__(self) -> str:
        return "CharacterTokenizer()"


class TiktokenTokenizer(BaseTokenizer):
    """BPE token counts from ``tiktoken``.

    Note: Requires the 'tiktoken' extra to be installed.
    """

    def __init__(self, encoding: str = "cl100k_base"):
        """Initialize the tokenizer.

        Args:
            encoding: Name of the tiktoken encoding
        """
        self.encoding_name = encoding
        self._encoding = None

    def _get_encoding(self):
        """Get or load the tiktoken encoding."""
        if self._encoding is None:
            try:
                import tiktoken
            except ImportError:
                raise ImportError(
                    "Tiktoken tokenizer requires the 'tiktoken' package. "
                    "Install it with: pip install spanrag[tiktoken]"
                )
            self._encoding = tiktoken.get_encoding(self.encoding_name)
            logger.debug(f"Loaded tiktoken encoding: {self.encoding_name}")
        return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._get_encoding().encode(text, disallowed_special=()))

    def __repr__(self) -> str:
        return f"TiktokenTokenizer(encoding={self.encoding_name!r})"
