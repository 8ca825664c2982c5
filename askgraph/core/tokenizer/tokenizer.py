"""
Token counting for result budgets and summaries.

Uses tiktoken for accurate OpenAI-compatible token counting, with a
character-ratio approximation when configured (or for quick estimates).
"""

import tiktoken

from askgraph.config import TokenizerConfig


class Tokenizer:
    """
    Token counter used to size result sets for the downstream model.

    Usage:
        tokenizer = Tokenizer()
        count = tokenizer.count_tokens("Hello world")
        chars = tokenizer.chars_for_tokens(64000)
    """

    def __init__(self, config: TokenizerConfig | None = None):
        """
        Initialize tokenizer with configuration.

        Args:
            config: Optional tokenizer configuration. Uses defaults if not provided.
        """
        self.config = config or TokenizerConfig()
        self._encoder: tiktoken.Encoding | None = None

    @property
    def encoder(self) -> tiktoken.Encoding:
        """
        Lazy-load tiktoken encoder.

        Returns:
            Tiktoken encoding instance
        """
        if self._encoder is None:
            self._encoder = tiktoken.get_encoding(self.config.model)
        return self._encoder

    def count_tokens(self, text: str) -> int:
        """
        Count tokens.

        Args:
            text: Text to count tokens for

        Returns:
            Exact token count (approximate with the "approximate" provider)
        """
        if not text:
            return 0

        if self.config.provider == "approximate":
            return self.estimate_tokens(text)

        return len(self.encoder.encode(text))

    def estimate_tokens(self, text: str) -> int:
        """
        Fast approximate token count using the configured chars_per_token ratio.

        Args:
            text: Text to estimate tokens for

        Returns:
            Approximate token count
        """
        if not text:
            return 0
        return int(len(text) / self.config.chars_per_token)

    def chars_for_tokens(self, tokens: int) -> int:
        """
        Character budget equivalent to a token budget.

        Args:
            tokens: Token budget

        Returns:
            Approximate number of characters
        """
        return int(tokens * self.config.chars_per_token)

    def truncate(self, text: str, max_tokens: int) -> str:
        """
        Cut text to at most max_tokens tokens.

        Args:
            text: Text to truncate
            max_tokens: Token ceiling

        Returns:
            Truncated text (unchanged if already within the ceiling)
        """
        if not text or max_tokens <= 0:
            return ""

        if self.config.provider == "approximate":
            return text[: self.chars_for_tokens(max_tokens)]

        tokens = self.encoder.encode(text)
        if len(tokens) <= max_tokens:
            return text
        return self.encoder.decode(tokens[:max_tokens])
