"""Feature gate: the ``!implement`` preamble scan.

Some statement classes stay locked until the script opts in. The scan runs
once per run, before anything executes, and produces an immutable
``FeatureFlags`` value that is threaded through the evaluator. Directives
may appear anywhere in the script and apply to the whole run.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Union

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DIRECTIVE_RE = re.compile(r"^!implement\s+", re.IGNORECASE)

_CONDITION_NORMAL_RE = re.compile(r"^!implement\s+condition\s+normal", re.IGNORECASE)
_CONDITION_LOOPING_RE = re.compile(r"^!implement\s+condition\s+looping", re.IGNORECASE)
_TIME_RE = re.compile(r"^!implement\s+time", re.IGNORECASE)
_FAST_MODE_RE = re.compile(r"^!implement\s+fastmode", re.IGNORECASE)


@dataclass(frozen=True)
class FeatureFlags:
    """Capabilities unlocked for a single run."""

    condition_normal: bool = False
    condition_looping: bool = False
    time: bool = False
    fast_mode: bool = False


def is_directive(line: str) -> bool:
    return bool(DIRECTIVE_RE.match(line.strip()))


def scan_features(script: Union[str, Iterable[str]]) -> FeatureFlags:
    """Scan every line of ``script`` for ``!implement`` directives.

    Accepts either the raw script text or an iterable of lines. Unknown
    directives are ignored.
    """
    lines = script.split("\n") if isinstance(script, str) else script
    normal = looping = time_ = fast = False
    for raw in lines:
        line = raw.strip()
        if not DIRECTIVE_RE.match(line):
            continue
        if _CONDITION_NORMAL_RE.match(line):
            normal = True
        elif _CONDITION_LOOPING_RE.match(line):
            looping = True
        elif _TIME_RE.match(line):
            time_ = True
        elif _FAST_MODE_RE.match(line):
            fast = True
        else:
            logger.debug("Ignoring unknown directive: %s", line)
    flags = FeatureFlags(
        condition_normal=normal,
        condition_looping=looping,
        time=time_,
        fast_mode=fast,
    )
    logger.debug("Feature scan: %s", flags)
    return flags
