"""Unit tests validating the in-process interpreter behaviour and errors."""

from backend.together.interpreter import Interpreter, run


def test_assign_and_log():
    it = Interpreter()
    code = '[x] = *5*\nlog([x])\n[y] = |5.5|\nlog([y])'
    assert it.run(code) == "5\n5.5"


def test_let_and_text_literal():
    it = Interpreter()
    res = it.execute('Let [name] = "Ada"\nlog([name])')
    assert res.output == "Ada"
    assert res.error is None


def test_list_assignment_and_index():
    it = Interpreter()
    code = '/L/ = #1, "two", _true_#\nlog(/L/<0>)\nlog(/L/<1>)\nlog(/L/<2>)'
    assert it.run(code) == "1\ntwo\ntrue"


def test_if_runs_on_match():
    code = (
        '!implement condition normal\n'
        '[a] = *1*\n'
        '[b] = *1*\n'
        'If <[a]> =? <[b]> { log([a]) }'
    )
    assert run(code) == "1"


def test_if_skips_on_mismatch():
    code = (
        '!implement condition normal\n'
        '[a] = *1*\n'
        '[b] = *2*\n'
        'If <[a]> =? <[b]> { log([a]) }'
    )
    assert run(code) == ""


def test_if_else_if_else_chain():
    code = (
        '!implement condition normal\n'
        '[x] = "b"\n'
        'If <[x]> =? <"a"> {\n'
        '  log("first")\n'
        '}\n'
        'Else If <[x]> =? <"b"> {\n'
        '  log("second")\n'
        '}\n'
        'Else {\n'
        '  log("third")\n'
        '}\n'
        'log("done")\n'
    )
    assert run(code) == "second\ndone"


def test_else_on_closing_line():
    code = (
        '!implement condition normal\n'
        'If <*1*> =? <*2*> {\n'
        '  log("no")\n'
        '} Else {\n'
        '  log("yes")\n'
        '}\n'
    )
    assert run(code) == "yes"


def test_nested_if_else():
    code = (
        '!implement condition normal\n'
        '[a] = *2*\n'
        'If <[a]> =? <*2*> {\n'
        '  If <[a]> =? <*3*> {\n'
        '    log("inner-no")\n'
        '  }\n'
        '  Else {\n'
        '    log("inner-else")\n'
        '  }\n'
        '  log("after-inner")\n'
        '}\n'
        'Else {\n'
        '  log("outer-else")\n'
        '}\n'
    )
    res = Interpreter().execute(code)
    assert res.output_lines == ["inner-else", "after-inner"]
    assert res.error is None


def test_during_stops_when_guard_changes():
    code = (
        '!implement condition looping\n'
        '[state] = "go"\n'
        'During <[state]> =? <"go"> {\n'
        '  log("once")\n'
        '  [state] = "stop"\n'
        '}\n'
        'log("after")\n'
    )
    assert run(code) == "once\nafter"


def test_for_body_updates_guard():
    code = (
        '!implement condition looping\n'
        '[done] = "no"\n'
        'For [i] = *0*, [done] =? "no", [done] = "yes"\n'
        'log([i])\n'
        'log([done])\n'
    )
    assert run(code) == "0\nyes"


def test_feature_gates_without_directives():
    it = Interpreter()
    cases = {
        'If <*1*> =? <*1*> { log("x") }':
            "Error: Normal conditions not enabled! Use !implement condition normal",
        'During <*1*> =? <*1*> {\nlog("x")\n}':
            "Error: Looping conditions not enabled! Use !implement condition looping",
        'For [i] = *0*, [i] =? *0*, [i] = *1*':
            "Error: Looping conditions not enabled! Use !implement condition looping",
        'wait(10)': "Error: Time features not enabled! Use !implement time",
        'log(time.now)': "Error: Time features not enabled! Use !implement time",
    }
    for code, expected in cases.items():
        res = it.execute(code)
        assert res.output == expected
        assert res.error["code"] == "FEATURE_NOT_ENABLED"


def test_time_features_when_enabled():
    it = Interpreter()
    res = it.execute('!implement time\nwait(1)\nlog(time.now)')
    assert res.error is None
    assert res.output.isdigit()


def test_partial_output_preserved_before_error():
    res = Interpreter().execute('log("a")\nbogus line\nlog("b")')
    assert res.output_lines == ["a", 'Error: Unknown instruction or syntax: "bogus line"']
    assert res.error["code"] == "SYNTAX_ERROR"


def test_comments_directives_and_blank_lines_are_inert():
    code = '++ a comment\n-- another one\n!implement time\n!implement colours\n\n   \nlog("hi")'
    assert run(code) == "hi"


def test_log_expressions():
    it = Interpreter()
    assert it.run('log(1 + 2 * 3)') == "7"
    assert it.run('log("a" + "b")') == "ab"
    assert it.run('[n] = *4*\nlog([n] + 1)') == "5"
    assert it.run('[n] = *4*\nlog("n=" + [n])') == "n=4"
    assert it.run('log(7 / 2)') == "3.5"
    assert it.run('log(-7 % 3)') == "-1"


def test_runs_are_independent():
    it = Interpreter()
    code = '!implement condition normal\n[a] = *1*\nIf <[a]> =? <*1*> { log("hit") }'
    assert it.run(code) == it.run(code) == "hit"
    # neither variables nor feature flags survive into the next run
    res = it.execute('log([a])')
    assert res.output == "Error: Variable [a] is not defined."
    res = it.execute('If <*1*> =? <*1*> { log("hit") }')
    assert res.error["code"] == "FEATURE_NOT_ENABLED"
