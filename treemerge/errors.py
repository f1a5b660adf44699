"""treemerge exceptions."""

from typing import Optional


class TreeMergeError(Exception):
    """Base exception for treemerge errors."""

    pass


class SelectorSyntaxError(TreeMergeError):
    """
    Raised when selector text is malformed.

    Carries the selector and the 0-based position of the offending
    character; str() shows both with a caret marker.
    """

    def __init__(self, message: str, selector: str = "", position: int = 0):
        self.message = message
        self.selector = selector
        self.position = position
        super().__init__(self._render())

    @property
    def fragment(self) -> str:
        """The selector text from the offending position onwards."""
        return self.selector[self.position:]

    def _render(self) -> str:
        text = f"{self.message} at position {self.position}"
        if not self.selector:
            return text
        return f"{text}\n  {self.selector}\n  {' ' * self.position}^"


class MergeInstructionError(SelectorSyntaxError):
    """Raised when a merge instruction is missing parts (on/from/fields)."""

    pass


class TypeMismatchError(TreeMergeError):
    """Raised when a resolved location has the wrong shape for the instruction."""

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected a {expected} at {path}, found a {actual}")


class MissingSourceError(TreeMergeError):
    """Raised when the input document has no value for a source key."""

    def __init__(self, source_key: str, detail: Optional[str] = None):
        self.source_key = source_key
        message = f"Input document has no value for {source_key!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DuplicateTargetError(TreeMergeError):
    """Raised when several list elements share a keyed target and duplicates are forbidden."""

    def __init__(self, path: str, key_field: str, target_value: str, count: int):
        self.path = path
        self.key_field = key_field
        self.target_value = target_value
        self.count = count
        super().__init__(
            f"{count} elements at {path} have {key_field}={target_value!r}"
        )


class NoMatchError(TreeMergeError):
    """Raised when a merge changed nothing and a match was required."""

    pass


class FormatError(TreeMergeError):
    """Raised when a document cannot be parsed or serialized."""

    pass


class UnsupportedFormatError(FormatError):
    """Raised for a format name no collaborator handles."""

    pass
