"""Together interpreter module.

This module runs Together scripts. A run goes through three steps:

- scan the whole script once for ``!implement`` directives (feature gate)
- execute it with either the standard engine (full control flow) or the
  fast engine (declarations, assignments, ``log`` and ``wait`` only)
- collect every ``log`` emission into an output buffer

Script errors never escape ``Interpreter.run``: the first error stops the
run and is appended to the output as ``Error: <message>``. Everything a run
mutates (flags, namespace, output) is created per call, so one
``Interpreter`` can serve concurrent requests.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .errors import (
    DanglingBranch,
    ExpressionError,
    FeatureNotEnabled,
    ScriptSyntaxError,
    TogetherError,
    WaitLimitExceeded,
)
from .expressions import evaluate_expression
from .features import FeatureFlags, scan_features
from .syntax import (
    LIST_LITERAL_RE,
    Assignment,
    Conditional,
    Dangling,
    During,
    ForLoop,
    GlobalDeclaration,
    Invalid,
    ListAssignment,
    LogCall,
    Skip,
    WaitCall,
    classify_fast,
    list_literal_items,
    parse_block,
)
from .values import (
    LIST_INDEX_RE,
    VARIABLE_RE,
    Namespace,
    evaluate_literal,
    loose_equals,
    read_list_item,
    read_variable,
    to_text,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

LOOP_GUARD_MESSAGE = "Infinite loop guard triggered."

DEFAULT_MAX_DURING_ITERATIONS = 1000
DEFAULT_MAX_FOR_ITERATIONS = 10000
DEFAULT_MAX_WAIT_MS = 60 * 60 * 1000


@dataclass
class RunResult:
    """Outcome of one script run.

    Attributes:
        output_lines: every emitted line in order, including a trailing
            ``Error: ...`` line when the run failed
        error: ``{"code", "message"}`` of the failure, or None
        features: the flags the run executed under
    """

    output_lines: List[str]
    error: Optional[Dict[str, Any]]
    features: FeatureFlags

    @property
    def output(self) -> str:
        return "\n".join(self.output_lines)


class _Evaluator:
    """Statement handlers shared by both engines.

    An evaluator instance lives for exactly one run and owns that run's
    namespace and output buffer.
    """

    def __init__(
        self,
        features: FeatureFlags,
        *,
        max_during_iterations: int = DEFAULT_MAX_DURING_ITERATIONS,
        max_for_iterations: int = DEFAULT_MAX_FOR_ITERATIONS,
        max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
    ):
        self.features = features
        self.namespace: Namespace = {}
        self.output: List[str] = []
        self.max_during_iterations = max_during_iterations
        self.max_for_iterations = max_for_iterations
        self.max_wait_ms = max_wait_ms

    def execute(self, lines: List[str]) -> None:
        raise NotImplementedError

    def emit(self, value: Any) -> None:
        self.output.append(to_text(value))

    def _require_time(self) -> None:
        if not self.features.time:
            raise FeatureNotEnabled("Time features not enabled! Use !implement time")

    def _handle_skip(self, stmt: Skip) -> None:
        return None

    def _handle_log(self, stmt: LogCall) -> None:
        """Emit the value of a ``log(...)`` argument.

        Argument forms in priority order: ``time.now``, ``/list/<i>``,
        ``[var]``, then a free-form expression.
        """
        arg = stmt.arg
        if arg == "time.now":
            self._require_time()
            self.emit(int(time.time() * 1000))
            return
        m = LIST_INDEX_RE.match(arg)
        if m:
            self.emit(read_list_item(m.group(1), m.group(2), self.namespace))
            return
        m = VARIABLE_RE.match(arg)
        if m:
            self.emit(read_variable(m.group(1), self.namespace))
            return
        try:
            value = evaluate_expression(arg, self.namespace)
        except ExpressionError as e:
            raise ExpressionError(
                f"Error evaluating log argument: {arg}: {e}", column=e.column, text=arg
            ) from e
        self.emit(value)

    def _handle_wait(self, stmt: WaitCall) -> None:
        # blocks the evaluating thread; there is no way to interrupt it
        self._require_time()
        if stmt.ms > self.max_wait_ms:
            raise WaitLimitExceeded(stmt.ms, self.max_wait_ms)
        time.sleep(stmt.ms / 1000.0)

    def _handle_assignment(self, stmt: Assignment) -> None:
        self.namespace[stmt.name] = evaluate_literal(stmt.value, self.namespace)

    def _handle_list_assignment(self, stmt: ListAssignment) -> None:
        self.namespace[stmt.name] = [evaluate_literal(item, self.namespace) for item in stmt.items]

    def _handle_invalid(self, stmt: Invalid) -> None:
        raise ScriptSyntaxError(stmt.message, line_text=stmt.line)


class StandardEvaluator(_Evaluator):
    """Full engine: conditionals, both loop forms, output, delays, assignment."""

    def __init__(self, features: FeatureFlags, **limits: int):
        super().__init__(features, **limits)
        self._handlers: Dict[type, Callable[[Any], None]] = {
            Skip: self._handle_skip,
            Conditional: self._handle_conditional,
            During: self._handle_during,
            ForLoop: self._handle_for,
            LogCall: self._handle_log,
            WaitCall: self._handle_wait,
            Assignment: self._handle_assignment,
            ListAssignment: self._handle_list_assignment,
            Dangling: self._handle_dangling,
            Invalid: self._handle_invalid,
        }

    def execute(self, lines: List[str]) -> None:
        self.run_nodes(parse_block(lines))

    def run_nodes(self, nodes: List[Any]) -> None:
        for node in nodes:
            self.run_node(node)

    def run_node(self, node: Any) -> None:
        self._handlers[type(node)](node)

    def _test(self, left: str, right: str) -> bool:
        return loose_equals(
            evaluate_literal(left, self.namespace),
            evaluate_literal(right, self.namespace),
        )

    def _require_looping(self) -> None:
        if not self.features.condition_looping:
            raise FeatureNotEnabled("Looping conditions not enabled! Use !implement condition looping")

    def _handle_conditional(self, node: Conditional) -> None:
        """Run the first branch whose operands are loosely equal, else ``Else``."""
        if not self.features.condition_normal:
            raise FeatureNotEnabled("Normal conditions not enabled! Use !implement condition normal")
        for branch in node.branches:
            if self._test(branch.left, branch.right):
                self.run_nodes(branch.body)
                return
        if node.otherwise is not None:
            self.run_nodes(node.otherwise)

    def _handle_during(self, node: During) -> None:
        self._require_looping()
        iterations = 0
        while self._test(node.left, node.right):
            self.run_nodes(node.body)
            iterations += 1
            if iterations >= self.max_during_iterations:
                logger.debug("During guard tripped after %d iterations: %s", iterations, node.line)
                self.emit(LOOP_GUARD_MESSAGE)
                break

    def _handle_for(self, node: ForLoop) -> None:
        """Counted loop.

        The induction variable is only initialized here; the body statement
        is responsible for changing whatever the guard reads.
        """
        self._require_looping()
        self.namespace[node.var] = evaluate_literal(node.start, self.namespace)
        iterations = 0
        while loose_equals(
            read_variable(node.check, self.namespace),
            evaluate_literal(node.end, self.namespace),
        ):
            self.run_node(node.body)
            iterations += 1
            if iterations >= self.max_for_iterations:
                logger.debug("For guard tripped after %d iterations: %s", iterations, node.line)
                self.emit(LOOP_GUARD_MESSAGE)
                break

    def _handle_dangling(self, node: Dangling) -> None:
        kind = "Else If" if node.is_else_if else "Else"
        raise DanglingBranch(f"{kind} without preceding If block!", line_text=node.line)


class FastEvaluator(_Evaluator):
    """Reduced single-pass engine used when ``!implement fastmode`` is present.

    Grouplet/Process/Connect declarations and directives are ignored; there
    is no control flow, so every ``If``/``During``/``For`` line is a syntax
    error here.
    """

    def __init__(self, features: FeatureFlags, **limits: int):
        super().__init__(features, **limits)
        self._handlers: Dict[type, Callable[[Any], None]] = {
            Skip: self._handle_skip,
            GlobalDeclaration: self._handle_global,
            Assignment: self._handle_assignment,
            ListAssignment: self._handle_list_assignment,
            LogCall: self._handle_log,
            WaitCall: self._handle_wait,
            Invalid: self._handle_invalid,
        }

    def execute(self, lines: List[str]) -> None:
        for raw in lines:
            stmt = classify_fast(raw)
            self._handlers[type(stmt)](stmt)

    def _handle_global(self, stmt: GlobalDeclaration) -> None:
        m = LIST_LITERAL_RE.match(stmt.value)
        if m:
            value: Any = [evaluate_literal(item, self.namespace) for item in list_literal_items(m.group("items"))]
        else:
            value = evaluate_literal(stmt.value, self.namespace)
        logger.debug("glb %s %s declared", stmt.kind, stmt.name)
        self.namespace[stmt.name] = value


class Interpreter:
    """Top-level Together interpreter.

    Holds configuration only; every call to ``run``/``execute`` gets its own
    feature flags, namespace and output buffer.

    Tunable attributes:
    - max_during_iterations: iteration guard for ``During`` loops
    - max_for_iterations: iteration guard for ``For`` loops
    - max_wait_ms: longest single ``wait(ms)`` a script may request
    """

    def __init__(self):
        self.max_during_iterations = DEFAULT_MAX_DURING_ITERATIONS
        self.max_for_iterations = DEFAULT_MAX_FOR_ITERATIONS
        self.max_wait_ms = DEFAULT_MAX_WAIT_MS

    def _make_evaluator(self, features: FeatureFlags) -> _Evaluator:
        engine = FastEvaluator if features.fast_mode else StandardEvaluator
        logger.debug("Running with %s", engine.__name__)
        return engine(
            features,
            max_during_iterations=self.max_during_iterations,
            max_for_iterations=self.max_for_iterations,
            max_wait_ms=self.max_wait_ms,
        )

    def execute(self, code: str) -> RunResult:
        """Run ``code`` and return the structured result.

        Script errors are caught here, recorded in ``RunResult.error`` and
        appended to the output as ``Error: <message>``.
        """
        lines = code.split("\n")
        features = scan_features(lines)
        evaluator = self._make_evaluator(features)
        error: Optional[Dict[str, Any]] = None
        try:
            evaluator.execute(lines)
        except TogetherError as e:
            logger.info("Script stopped: %s (%s)", e, e.code)
            error = e.to_dict()
        except RecursionError:
            logger.info("Script stopped: blocks nested too deeply")
            error = {"code": "SYNTAX_ERROR", "message": "Blocks are nested too deeply."}
        if error is not None:
            evaluator.output.append(f"Error: {error['message']}")
        return RunResult(evaluator.output, error, features)

    def run(self, code: str) -> str:
        """Run ``code`` and return its output text (never raises for script errors)."""
        return self.execute(code).output


def run(script_text: str) -> str:
    """Run a script with a default ``Interpreter`` and return its output."""
    return Interpreter().run(script_text)
