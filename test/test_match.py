import io
import pickle
import re
import sys
from types import SimpleNamespace

import pytest

import pipecapture

def writer(ns, text):
    return lambda: ns.out.write(text)

def test():
    assert pipecapture.match(sys, "stdout", lambda: print("hello world"), r"^hello") is None

def test_no_match_carries_text_and_pattern():
    ns = SimpleNamespace(out=io.StringIO())
    with pytest.raises(pipecapture.NoMatch) as excinfo:
        pipecapture.match(ns, "out", writer(ns, "hello world"), r"^world")
    assert excinfo.value.text == "hello world"
    assert excinfo.value.pattern == r"^world"
    assert "hello world" in str(excinfo.value)
    assert str(excinfo.value) == "String: 'hello world' fails to match regexp: '^world'."

def test_no_match_is_an_assertion_error():
    ns = SimpleNamespace(out=io.StringIO())
    with pytest.raises(AssertionError):
        pipecapture.match(ns, "out", writer(ns, "abc"), "xyz")

def test_empty_output_does_not_match_one_or_more():
    ns = SimpleNamespace(out=io.StringIO())
    with pytest.raises(pipecapture.NoMatch) as excinfo:
        pipecapture.match(ns, "out", lambda: None, ".+")
    assert excinfo.value.text == ""

def test_matches_anywhere():
    ns = SimpleNamespace(out=io.StringIO())
    pipecapture.match(ns, "out", writer(ns, "line one\nline two\n"), r"two")

def test_caret_anchors_to_start_of_text_only():
    ns = SimpleNamespace(out=io.StringIO())
    with pytest.raises(pipecapture.NoMatch):
        pipecapture.match(ns, "out", writer(ns, "first\nsecond\n"), r"^second")

def test_compiled_pattern():
    ns = SimpleNamespace(out=io.StringIO())
    pipecapture.match(ns, "out", writer(ns, "Hello"), re.compile("hello", re.IGNORECASE))
    with pytest.raises(pipecapture.NoMatch) as excinfo:
        pipecapture.match(ns, "out", writer(ns, "Hello"), re.compile("bye"))
    assert excinfo.value.pattern == "bye"

@pytest.mark.parametrize("written", ["", "anything", "[abc"])
def test_malformed_pattern(written):
    ns = SimpleNamespace(out=io.StringIO())
    with pytest.raises(pipecapture.PatternError) as excinfo:
        pipecapture.match(ns, "out", writer(ns, written), "[abc")
    assert excinfo.value.pattern == "[abc"
    assert isinstance(excinfo.value.__cause__, re.error)
    assert not isinstance(excinfo.value, AssertionError)

def test_work_runs_once_even_with_malformed_pattern():
    original = io.StringIO()
    ns = SimpleNamespace(out=original)
    calls = []
    def work():
        calls.append(1)
        ns.out.write("x")
    with pytest.raises(pipecapture.PatternError):
        pipecapture.match(ns, "out", work, "(")
    assert calls == [1]
    assert ns.out is original

def test_match_agrees_with_capture():
    ns = SimpleNamespace(out=io.StringIO())
    work = writer(ns, "status: 42 ok\n")
    text = pipecapture.capture(ns, "out", work)
    for pattern in [r"\d+", r"ok$", r"^status", r"fail", r"^ok"]:
        if re.search(pattern, text):
            pipecapture.match(ns, "out", work, pattern)
        else:
            with pytest.raises(pipecapture.NoMatch):
                pipecapture.match(ns, "out", work, pattern)

def test_errors_share_a_base_class():
    for cls in (pipecapture.PatternError, pipecapture.NoMatch, pipecapture.HandleBusy):
        assert issubclass(cls, pipecapture.CaptureError)

def test_errors_survive_pickling():
    ns = SimpleNamespace(out=io.StringIO())
    with pytest.raises(pipecapture.NoMatch) as no_match:
        pipecapture.match(ns, "out", writer(ns, "hello world"), r"^world")
    with pytest.raises(pipecapture.PatternError) as bad_pattern:
        pipecapture.match(ns, "out", lambda: None, "[abc")
    for error in (no_match.value, bad_pattern.value):
        copy = pickle.loads(pickle.dumps(error))
        assert type(copy) is type(error)
        assert str(copy) == str(error)
        assert copy.pattern == error.pattern
    assert pickle.loads(pickle.dumps(no_match.value)).text == "hello world"
    busy = pipecapture.HandleBusy(SimpleNamespace(), "out")
    assert pickle.loads(pickle.dumps(busy)).name == "out"
