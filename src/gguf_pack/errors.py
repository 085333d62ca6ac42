"""Exception hierarchy for gguf-pack.

Every error raised by the codec and the packaging pipeline derives from
:class:`PackError`. None of them are recoverable: a failed packaging run is
aborted and its partial output discarded.
"""

from typing import Optional


class PackError(Exception):
    """Base exception for all gguf-pack operations."""

    pass


class ConfigError(PackError):
    """Raised when a manifest or task configuration is malformed."""

    def __init__(
        self, message: str, key: Optional[str] = None, task: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.key = key
        self.task = task

    def __str__(self) -> str:
        message = super().__str__()
        if self.key is not None and self.task is not None:
            return f'task "{self.key}" ({self.task}): {message}'
        if self.key is not None:
            return f'task "{self.key}": {message}'
        return message


class UnknownTaskTypeError(ConfigError):
    """Raised when a task names a task type that is not registered."""

    pass


class FormatError(PackError):
    """Raised when binary or textual input does not follow its format."""

    pass


class InvalidMagicError(FormatError):
    """Raised when a container does not start with the GGUF magic number."""

    pass


class UnsupportedVersionError(FormatError):
    """Raised when a container has a version other than 2 or 3."""

    pass


class InvalidTypeTagError(FormatError):
    """Raised when a metadata type tag is not known."""

    pass


class InvalidTensorTypeError(FormatError):
    """Raised when a tensor type tag is not known."""

    pass


class ExcessiveCountError(FormatError):
    """Raised when a tensor or metadata count exceeds its limit."""

    pass


class TooManyDimensionsError(FormatError):
    """Raised when a tensor has more than four dimensions."""

    pass


class UnsupportedDTypeError(FormatError):
    """Raised when a source or target element type cannot be converted."""

    pass


class TruncatedInputError(PackError):
    """Raised when fewer bytes are available than a field declares."""

    pass


class UnsupportedWriteError(PackError):
    """Raised when a value is representable but cannot be encoded."""

    pass


class ShapeMismatchError(PackError):
    """Raised when a declared tensor shape disagrees with the source."""

    pass


class SizeMismatchError(PackError):
    """Raised when a source byte range disagrees with the tensor geometry."""

    pass


class MissingTensorError(PackError):
    """Raised when a source tensor named in a manifest does not exist."""

    pass


class VocabError(PackError):
    """Base exception for malformed vocabulary text."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(message)
        self.line = line

    def __str__(self) -> str:
        message = super().__str__()
        if self.line is not None:
            return f"line {self.line}: {message}"
        return message


class UnknownEscapeError(VocabError):
    """Raised when a token uses an escape sequence outside the grammar."""

    pass


class EmptyTokenError(VocabError):
    """Raised when a token decodes to zero bytes."""

    pass


class InvalidTokenFormatError(VocabError):
    """Raised when a line is not a quoted byte literal."""

    pass


class LayoutInvariantViolation(PackError):
    """Raised when the output position disagrees with a precomputed offset.

    This signals a bookkeeping bug between the contribute and payload phases,
    not bad input.
    """

    pass


class TaskError(PackError):
    """Raised when a task fails; the original error is chained as the cause."""

    def __init__(self, key: str, phase: str, message: str) -> None:
        super().__init__(f'task "{key}" failed during {phase}: {message}')
        self.key = key
        self.phase = phase
