"""Value model for Together scripts.

Runtime values are plain Python objects:

- Number: ``int`` or ``float`` (``*5*`` and ``|5.5|`` both land here)
- Text: ``str``
- Boolean: ``bool``
- Null ("maybe"): ``None``
- List: ``list`` of any of the above

This module owns the literal grammar (``evaluate_literal``), the single
cross-type comparison used by every guard (``loose_equals``) and the text
rendering used for output (``to_text``).
"""

import math
import re
from decimal import Decimal
from typing import Any, Dict, List

from .errors import IndexOutOfRange, UndefinedList, UndefinedVariable

Namespace = Dict[str, Any]

NAN = float("nan")
MAX_SAFE_INTEGER = 2 ** 53

LIST_INDEX_RE = re.compile(r"^/([^/]+)/<(\d+)>$")
VARIABLE_RE = re.compile(r"^\[([^\[\]]+)\]$")

_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX_RE = re.compile(
    r"^\s*([+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))"
)
_NUMERIC_RE = re.compile(r"^[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)$")
_INTEGRAL_RE = re.compile(r"^[+-]?\d+$")


def integral(value):
    """Keep integers below 2**53 exact; larger ones become floats (or inf)."""
    if isinstance(value, int):
        return value if abs(value) < MAX_SAFE_INTEGER else float(value)
    if value.is_integer() and abs(value) < MAX_SAFE_INTEGER:
        return int(value)
    return value


def number_from_text(text: str):
    """Convert numeric text (already validated) to ``int`` or ``float``.

    The text goes through ``float`` first so arbitrarily long digit strings
    never reach ``int()``.
    """
    value = float(text)
    if _INTEGRAL_RE.match(text.strip()):
        return integral(value)
    return value


def parse_int_literal(text: str):
    """Parse the leading integer of ``text``; NaN when there is none."""
    m = _INT_PREFIX_RE.match(text)
    if not m:
        return NAN
    return number_from_text(m.group(1))


def parse_float_literal(text: str) -> float:
    """Parse the leading decimal number of ``text``; NaN when there is none."""
    m = _FLOAT_PREFIX_RE.match(text)
    if not m:
        return NAN
    return float(m.group(1))


def to_number(value: Any):
    """Coerce a value to a number the way loose comparison needs it.

    Empty (or whitespace-only) text is 0 and non-numeric text is NaN.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, list):
        return to_number(to_text(value))
    text = str(value).strip()
    if not text:
        return 0
    if _NUMERIC_RE.match(text):
        return number_from_text(text)
    return NAN


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < MAX_SAFE_INTEGER:
        return str(int(value))
    text = repr(value)
    if "e" not in text:
        return text[:-2] if text.endswith(".0") else text
    mantissa, exp_text = text.split("e")
    exp = int(exp_text)
    if -7 < exp < 21:
        return format(Decimal(text), "f")
    return f"{mantissa}e{'+' if exp > 0 else '-'}{abs(exp)}"


def to_text(value: Any) -> str:
    """Render a value as it appears in script output."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, list):
        return ",".join("" if item is None else to_text(item) for item in value)
    return str(value)


def loose_equals(left: Any, right: Any) -> bool:
    """Compare two values with the dialect's coercive equality.

    - null only equals null
    - two lists are equal only when they are the same list
    - booleans compare as 0/1
    - a list compared with a primitive compares by its rendered text
    - text vs text compares exactly; any other pairing compares numerically
    """
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, list) and isinstance(right, list):
        return left is right
    if isinstance(left, bool):
        left = int(left)
    if isinstance(right, bool):
        right = int(right)
    if isinstance(left, list):
        left = to_text(left)
    if isinstance(right, list):
        right = to_text(right)
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    return to_number(left) == to_number(right)


def read_variable(name: str, namespace: Namespace) -> Any:
    if name not in namespace:
        raise UndefinedVariable(name)
    return namespace[name]


def read_list_item(name: str, index: str, namespace: Namespace) -> Any:
    """Read ``/name/<index>``; ``index`` is the digit text from the reference."""
    if name not in namespace:
        raise UndefinedList(name)
    items = namespace[name]
    if not isinstance(items, list):
        raise IndexOutOfRange(name, index, None)
    digits = index.lstrip("0") or "0"
    # compare lengths first so oversized digit strings never reach int()
    if len(digits) > len(str(len(items))) or int(digits) >= len(items):
        raise IndexOutOfRange(name, index, len(items))
    return items[int(digits)]


def split_list_items(body: str) -> List[str]:
    """Split the inside of a ``#...#`` literal into trimmed element texts."""
    return [part.strip() for part in body.split(",")]


def evaluate_literal(text: str, namespace: Namespace) -> Any:
    """Evaluate a single literal or reference against ``namespace``.

    Forms are tried in order and the first match wins:
    ``/name/<i>``, ``[name]``, ``|float|``, ``*int*``, ``_true_`` /
    ``_false_`` / ``_maybe_``, quoted text, empty text (0), bare numeric
    text, and finally the raw text itself.

    Raises:
        UndefinedList: ``/name/<i>`` refers to an unassigned list.
        IndexOutOfRange: ``i`` is past the end of the list.
        UndefinedVariable: ``[name]`` refers to an unassigned variable.
    """
    val = text.strip()
    m = LIST_INDEX_RE.match(val)
    if m:
        return read_list_item(m.group(1), m.group(2), namespace)
    m = VARIABLE_RE.match(val)
    if m:
        return read_variable(m.group(1), namespace)
    if len(val) >= 2 and val[0] == "|" and val[-1] == "|":
        return parse_float_literal(val[1:-1])
    if len(val) >= 2 and val[0] == "*" and val[-1] == "*":
        return parse_int_literal(val[1:-1])
    if val == "_true_":
        return True
    if val == "_false_":
        return False
    if val == "_maybe_":
        return None
    if len(val) >= 2 and val[0] == val[-1] and val[0] in ("'", '"'):
        return val[1:-1]
    if not val:
        return 0
    if _NUMERIC_RE.match(val):
        return number_from_text(val)
    return val
