"""Tests for interpreter runtime limits (loop guards)."""

from backend.together.interpreter import (
    DEFAULT_MAX_DURING_ITERATIONS,
    DEFAULT_MAX_FOR_ITERATIONS,
    DEFAULT_MAX_WAIT_MS,
    LOOP_GUARD_MESSAGE,
    Interpreter,
)


def test_during_guard_default():
    it = Interpreter()
    code = '!implement condition looping\nDuring <*1*> =? <*1*> {\n  log("x")\n}\nlog("after")'
    res = it.execute(code)
    assert res.error is None
    assert res.output_lines.count("x") == DEFAULT_MAX_DURING_ITERATIONS == 1000
    assert res.output_lines.count(LOOP_GUARD_MESSAGE) == 1
    assert res.output_lines[-2:] == [LOOP_GUARD_MESSAGE, "after"]


def test_for_guard_default():
    it = Interpreter()
    code = '!implement condition looping\nFor [i] = *0*, [i] =? *0*, log("t")'
    res = it.execute(code)
    assert res.error is None
    assert res.output_lines.count("t") == DEFAULT_MAX_FOR_ITERATIONS == 10000
    assert res.output_lines[-1] == LOOP_GUARD_MESSAGE


def test_loop_caps_are_tunable():
    it = Interpreter()
    it.max_during_iterations = 3
    it.max_for_iterations = 2
    code = (
        '!implement condition looping\n'
        'During <_true_> =? <*1*> { log("d") }\n'
        'For [i] = *0*, [i] =? *0*, log("f")\n'
    )
    assert it.run(code).split("\n") == [
        "d", "d", "d", LOOP_GUARD_MESSAGE,
        "f", "f", LOOP_GUARD_MESSAGE,
    ]


def test_guard_reached_exactly_at_cap_still_warns():
    it = Interpreter()
    it.max_during_iterations = 2
    code = (
        '!implement condition looping\n'
        '[n] = *0*\n'
        'During <[n]> =? <*0*> {\n'
        '  [n] = *0*\n'
        '}\n'
    )
    assert it.run(code) == LOOP_GUARD_MESSAGE


def test_guard_not_triggered_for_short_loops():
    it = Interpreter()
    it.max_for_iterations = 5
    code = '!implement condition looping\nFor [i] = *0*, [i] =? *0*, [i] = *1*\nlog([i])'
    assert it.run(code) == "1"


def test_wait_limit():
    it = Interpreter()
    res = it.execute('!implement time\nlog("before")\nwait(9999999999999999999999999)\nlog("after")')
    assert res.output_lines == [
        "before",
        f"Error: wait() duration exceeds the maximum of {DEFAULT_MAX_WAIT_MS} ms.",
    ]
    assert res.error["code"] == "WAIT_LIMIT"

    res = it.execute('!implement time\nwait(' + '9' * 5000 + ')')
    assert res.error["code"] == "WAIT_LIMIT"


def test_wait_limit_is_tunable():
    it = Interpreter()
    it.max_wait_ms = 5
    assert it.run('!implement time\nwait(5)\nlog("ok")') == "ok"
    assert it.execute('!implement time\nwait(6)').error["code"] == "WAIT_LIMIT"
