"""
Context Assembly

Packs retrieved page sections into the prompt's documentation context
under a token budget. Sections are taken greedily in rank order; the first
section that would bring the running total to the budget (or over it) stops
assembly and is dropped whole rather than truncated.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import tiktoken

from config.settings import get_settings
from nx_docs_ai.vector_store import PageSection

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n---\n"


@dataclass
class ContextWindow:
    """Assembled documentation context."""

    text: str
    token_count: int
    sections_used: List[PageSection] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.sections_used)


class ContextBuilder:
    """
    Greedy, rank-ordered context assembler.

    Example:
        builder = ContextBuilder(max_tokens=2500)
        window = builder.build(sections)
        print(window.text)
    """

    def __init__(
        self,
        max_tokens: Optional[int] = None,
        encoding_name: Optional[str] = None,
        encoding=None,
    ):
        """
        Args:
            max_tokens: Token budget for the context (default from config)
            encoding_name: tiktoken encoding name (default ``r50k_base``)
            encoding: Any object with an ``encode(text) -> list`` method;
                      overrides ``encoding_name``
        """
        settings = get_settings()
        if max_tokens is None:
            max_tokens = settings.retrieval.max_context_tokens
        self.max_tokens = max_tokens
        self.encoding_name = encoding_name or settings.retrieval.tokenizer_encoding
        self._encoding = encoding

    def _get_encoding(self):
        """Lazy load the tokenizer (only when first needed)."""
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def count_tokens(self, text: str) -> int:
        return len(self._get_encoding().encode(text))

    def build(self, sections: Sequence[PageSection]) -> ContextWindow:
        """
        Concatenate sections until the token budget is reached.

        Args:
            sections: Sections in ranked order

        Returns:
            ContextWindow with the joined text and the sections that fit
        """
        token_count = 0
        parts: List[str] = []
        used: List[PageSection] = []

        for section in sections:
            tokens = self.count_tokens(section.content)
            if token_count + tokens >= self.max_tokens:
                logger.debug(
                    f"Context budget reached at section '{section.heading}' "
                    f"({token_count} + {tokens} >= {self.max_tokens})"
                )
                break

            token_count += tokens
            parts.append(f"{section.content.strip()}{SECTION_SEPARATOR}")
            used.append(section)

        logger.info(f"Built context with {len(used)} of {len(sections)} sections ({token_count} tokens)")
        return ContextWindow(text="".join(parts), token_count=token_count, sections_used=used)
