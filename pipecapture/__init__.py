r"""
## pipecapture: capture what a piece of code writes to sys.stdout, sys.stderr or any other stream attribute

# Installation

`pip install pipecapture`

# Example usage

```python
import sys, pipecapture

def greet():
    print("hello world")

assert pipecapture.capture(sys, "stdout", greet) == "hello world\n"
pipecapture.match(sys, "stdout", greet, r"^hello")
```

# Documentation

`capture(owner, name, work)` runs the zero-argument callable `work` while the attribute
`owner.name` (for example `sys.stdout`) points at the write end of a fresh `os.pipe()`, then
puts the original value back and returns everything `work` wrote as a string. The code under
test does not need to change: anything that looks up `owner.name` when it writes, as `print()`
does for `sys.stdout`, ends up in the pipe.

A separate thread listens to the read end of the pipe for the whole call and accumulates the
bytes. Once `work` returns, the write end is closed, the thread sees end-of-file and hands the
complete buffer back through a one-shot queue, which the caller waits on. The original value of
`owner.name` is restored and both ends of the pipe are closed on every exit path, including when
`work` raises; the exception then propagates unchanged.

The installed stream is a text stream that uses the encoding of the stream it replaces (UTF-8
when that stream has none) and does no newline translation, so a `work` that writes the string
`S` and nothing else is captured as exactly `S`. Its `buffer` attribute accepts bytes, so
`sys.stdout.buffer.write(b"...")` is captured too.

`match(owner, name, work, pattern)` captures in the same way and then searches the captured text
with `re.search`. It returns `None` when the pattern matches anywhere in the text. Otherwise it
raises `NoMatch`, which carries the captured `text` and the `pattern` and is also an
`AssertionError`, so it reads as a plain test failure. A pattern that does not compile raises
`PatternError`. In both cases `work` has already run exactly once.

`HandleCapture(owner, name)` is the object doing the work. It starts capturing as soon as it is
constructed and stops on `HandleCapture.close()`, which is called automatically at the end of a
`with` block and returns the captured text. The text stays available as `HandleCapture.text`.

```python
with pipecapture.HandleCapture(sys, "stderr") as cap:
    print("oops", file=sys.stderr)
assert cap.text == "oops\n"
```

# Caveats

Only writes that go through the attribute while it is redirected are seen. Code that kept a
reference to the old stream before the call, such as `from sys import stdout` at import time
or a `logging.StreamHandler` built earlier, keeps writing to the old stream. Threads started by
`work` that write after `work` returns race with the restoration and may write into a closed
stream or miss the capture altogether.

Capturing the same attribute from two threads at once is not supported. The second thread
gets `HandleBusy` instead of silently corrupting the first capture. Nested captures of the
same attribute from one thread are fine: they unwind in order.

There is no timeout. If `work` never returns, neither does `capture`.

This module swaps the Python-level attribute only. Output written by child processes or C
libraries straight to file descriptor 1 or 2 is not captured.
"""
import io
import os, re, threading, queue
from types import TracebackType
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union, TextIO

__all__ = [
    "CHUNK_SIZE",
    "CaptureError",
    "PatternError",
    "NoMatch",
    "HandleBusy",
    "HandleCapture",
    "capture",
    "match",
]

CHUNK_SIZE = 100000
"""Largest number of bytes the reader thread asks for in one `os.read()`."""


class CaptureError(Exception):
    """Base class for the errors raised by this module."""


class PatternError(CaptureError):
    """The pattern given to `match()` is not a valid regular expression."""

    pattern: str
    reason: str

    def __init__(self, pattern: str, reason: str):
        super().__init__(pattern, reason)
        (self.pattern, self.reason) = (pattern, reason)

    def __str__(self) -> str:
        return "Invalid regexp: '%s': %s" % (self.pattern, self.reason)


class NoMatch(CaptureError, AssertionError):
    """The captured text does not match the pattern given to `match()`."""

    text: str
    pattern: str

    def __init__(self, text: str, pattern: str):
        super().__init__(text, pattern)
        (self.text, self.pattern) = (text, pattern)

    def __str__(self) -> str:
        return "String: '%s' fails to match regexp: '%s'." % (self.text, self.pattern)


class HandleBusy(CaptureError):
    """Another thread is already capturing this attribute."""

    def __init__(self, owner: Any, name: str):
        super().__init__(owner, name)
        (self.owner, self.name) = (owner, name)

    def __str__(self) -> str:
        return "%r of %r is already being captured by another thread" % (self.name, self.owner)


# (id(owner), name) -> [thread ident, nesting depth]
_claims: Dict[Tuple[int, str], List[int]] = {}
_claims_lock = threading.Lock()


def _claim(owner: Any, name: str) -> None:
    key = (id(owner), name)
    ident = threading.get_ident()
    with _claims_lock:
        holder = _claims.get(key)
        if holder is None:
            _claims[key] = [ident, 1]
        elif holder[0] == ident:
            holder[1] += 1
        else:
            raise HandleBusy(owner, name)


def _release(owner: Any, name: str) -> None:
    key = (id(owner), name)
    with _claims_lock:
        holder = _claims[key]
        holder[1] -= 1
        if holder[1] == 0:
            del _claims[key]


class HandleCapture:
    """Redirect writes made through `owner.name` into a pipe and collect them as text."""

    active: bool
    owner: Any
    name: str
    original: Any
    """The value of `owner.name` before the capture started. Put back by `close()`."""
    encoding: str
    text: Optional[str]
    """The captured text, `None` until `close()` has returned."""

    pipe_read_fd: int
    stream: TextIO
    """The stream installed as `owner.name`, writing into the pipe."""
    handoff: "queue.Queue[Union[bytes, BaseException]]"
    thread: threading.Thread

    def __init__(self, owner: Any, name: str):
        """`HandleCapture` constructor.

        :param owner: The object holding the stream, e.g. the `sys` module.
        :param name: The attribute of `owner` to redirect, e.g. `"stdout"`.
        :raises HandleBusy: if another thread is capturing `owner.name`.
        :raises AttributeError: if `owner` has no attribute `name`.
        """
        _claim(owner, name)
        (pipe_read_fd, pipe_write_fd, binary, stream, swapped) = (None, None, None, None, False)
        try:
            original = getattr(owner, name)
            (self.active, self.owner, self.name, self.original, self.text) = (True, owner, name, original, None)
            self.encoding = getattr(original, "encoding", None) or "utf-8"
            errors = getattr(original, "errors", None) or "strict"
            (pipe_read_fd, pipe_write_fd) = os.pipe()
            self.pipe_read_fd = pipe_read_fd
            binary = os.fdopen(pipe_write_fd, "wb")
            # write_through keeps text writes and buffer.write() calls in order
            stream = io.TextIOWrapper(
                binary,
                encoding=self.encoding,
                errors=errors,
                newline="\n",
                write_through=True,
            )
            self.stream = stream
            self.handoff = queue.Queue(maxsize=1)
            setattr(owner, name, stream)
            swapped = True
            self.thread = threading.Thread(target=self.reader, name="pipecapture-reader", daemon=True)
            self.thread.start()
        except BaseException:
            self.active = False
            if swapped:
                setattr(owner, name, original)
            if stream is not None:
                stream.close()
            elif binary is not None:
                binary.close()
            elif pipe_write_fd is not None:
                os.close(pipe_write_fd)
            if pipe_read_fd is not None:
                os.close(pipe_read_fd)
            _release(owner, name)
            raise

    def reader(self) -> None:
        """This is the thread that drains the pipe and hands the collected bytes to `close()`."""
        chunks = []
        result: Union[bytes, BaseException]
        try:
            try:
                while True:
                    data = os.read(self.pipe_read_fd, CHUNK_SIZE)
                    if not data:
                        # EOF - write end is closed
                        break
                    chunks.append(data)
                result = b"".join(chunks)
            finally:
                os.close(self.pipe_read_fd)
        except BaseException as e:
            # re-raised by close() on the capturing thread
            result = e
        self.handoff.put(result)

    def close(self) -> Optional[str]:
        """Stop capturing, restore `owner.name` and return the captured text.

        Calling `close()` again returns the same text without doing anything else.
        """
        if not self.active:
            return self.text
        self.active = False
        try:
            try:
                self.stream.close()
            finally:
                result = self.handoff.get()
                self.thread.join()
        finally:
            setattr(self.owner, self.name, self.original)
            _release(self.owner, self.name)
        if isinstance(result, BaseException):
            raise result
        self.text = result.decode(self.encoding, errors="replace")
        return self.text

    def __enter__(self):
        return self

    def __exit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


def capture(owner: Any, name: str, work: Callable[[], Any]) -> str:
    """Run `work()` with `owner.name` redirected and return what it wrote.

    :param owner: The object holding the stream, e.g. the `sys` module.
    :param name: The attribute of `owner` to redirect, e.g. `"stdout"`.
    :param work: Called once, with no arguments. Its return value is ignored.
    :return: Everything written through `owner.name` while `work` ran.
    """
    with HandleCapture(owner, name) as cap:
        work()
    return cap.text  # type: ignore[return-value]


def match(owner: Any, name: str, work: Callable[[], Any], pattern: Union[str, "re.Pattern[str]"]) -> None:
    """Run `work()` like `capture()` and check that `pattern` matches somewhere in its output.

    :raises PatternError: if `pattern` does not compile.
    :raises NoMatch: if `pattern` does not match the captured text.
    """
    text = capture(owner, name, work)
    source = pattern if isinstance(pattern, str) else pattern.pattern
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise PatternError(source, str(e)) from e
    if regex.search(text) is None:
        raise NoMatch(text, source)
