"""Error taxonomy for the blog analytics pipeline.

Only ``TopicIndexError`` (an ``IndexError``) and ``InsufficientDataError``
escape the operations that raise them; the others are caught where they
occur and replaced by a logged fallback.
"""


class BlogSTMError(Exception):
    """Base class for every error raised by blogstm."""


class ParseError(BlogSTMError, ValueError):
    """Malformed input row or date string."""


class EmptyDocumentError(BlogSTMError):
    """A document has no text left after cleaning."""

    def __init__(self, doc_id: str):
        super().__init__(f"document {doc_id!r} is empty after cleaning")
        self.doc_id = doc_id


class InsufficientDataError(BlogSTMError):
    """Too few documents or terms for the requested number of topics."""


class TopicIndexError(BlogSTMError, IndexError):
    """Out-of-range topic or document reference."""


class DimensionMismatchError(BlogSTMError):
    """An embedding does not have the configured dimension or is incomplete."""


class NormalizationError(BlogSTMError):
    """A score group has zero total mass and cannot be normalised."""
