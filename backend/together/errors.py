"""Error kinds raised while evaluating Together scripts.

Every error here is a script-author error: it stops the current run but is
never allowed to escape the interpreter façade, which renders it as a
trailing ``Error: <message>`` output line. Each class carries a stable
``code`` so the HTTP layer and tests can tell the kinds apart without
parsing messages.
"""

from typing import Any, Dict, Optional


class TogetherError(Exception):
    """Base class for all script evaluation failures.

    Attributes:
        code: stable machine-readable error code
        line_text: optional source line that triggered the error
    """

    code = "RUNTIME_ERROR"

    def __init__(self, message: str, *, line_text: Optional[str] = None):
        super().__init__(message)
        self.line_text = line_text

    def to_dict(self) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.line_text is not None:
            err["context"] = {"line_text": self.line_text}
        return err


class UnresolvedReference(TogetherError):
    """A variable or list name was looked up but never assigned."""

    code = "UNRESOLVED_REFERENCE"

    def __init__(self, message: str, *, name: str, line_text: Optional[str] = None):
        super().__init__(message, line_text=line_text)
        self.name = name


class UndefinedVariable(UnresolvedReference):
    code = "UNDEFINED_VARIABLE"

    def __init__(self, name: str):
        super().__init__(f"Variable [{name}] is not defined.", name=name)


class UndefinedList(UnresolvedReference):
    code = "UNDEFINED_LIST"

    def __init__(self, name: str):
        super().__init__(f"List /{name}/ is not defined.", name=name)


class IndexOutOfRange(TogetherError):
    """A list-index reference pointed past the end of the list."""

    code = "INDEX_OUT_OF_RANGE"

    def __init__(self, name: str, index: str, length: Optional[int]):
        if length is None:
            message = f"/{name}/ is not a list; cannot read index {index}."
        else:
            message = f"Index {index} is out of range for list /{name}/ (length {length})."
        super().__init__(message)
        self.name = name
        self.index = index
        self.length = length


class FeatureNotEnabled(TogetherError):
    code = "FEATURE_NOT_ENABLED"


class WaitLimitExceeded(TogetherError):
    """A ``wait(ms)`` asked for longer than the run's ``max_wait_ms``."""

    code = "WAIT_LIMIT"

    def __init__(self, ms: float, limit: int):
        super().__init__(f"wait() duration exceeds the maximum of {limit} ms.")
        self.ms = ms
        self.limit = limit


class DanglingBranch(TogetherError):
    code = "DANGLING_BRANCH"


class ScriptSyntaxError(TogetherError):
    """Raised for lines that match no statement form of the active engine."""

    code = "SYNTAX_ERROR"


class ExpressionError(TogetherError):
    """Raised when a free-form ``log`` expression cannot be evaluated.

    Attributes:
        column: optional 1-based column inside the expression text
        text: the expression text as written
    """

    code = "EXPRESSION_ERROR"

    def __init__(self, message: str, *, column: Optional[int] = None, text: Optional[str] = None):
        super().__init__(message)
        self.column = column
        self.text = text
