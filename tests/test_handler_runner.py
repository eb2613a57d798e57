"""Tests for isolated page handler processes."""

import json
import sys
import textwrap

import pytest

from flami.app.exceptions import (
    HandlerFailureError,
    HandlerNotFoundError,
    HandlerTimeoutError,
)
from flami.app.services.handler_runner import (
    HandlerOutput,
    IsolatedHandler,
    parse_handler_output,
)


def make_handler(directory, name, source):
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source).lstrip())
    return path


class TestParseHandlerOutput:
    """Tests for parse_handler_output."""

    def test_plain_text(self):
        output = parse_handler_output(b"hello world\n")
        assert output == HandlerOutput(content="hello world\n")

    def test_json_without_rich_keys_is_content(self):
        output = parse_handler_output(b'{"user": "ada", "count": 2}')
        assert output.content == {"user": "ada", "count": 2}
        assert output.headers == {}
        assert output.cookies == []
        assert output.redirect_location is None

    def test_json_list_is_content(self):
        assert parse_handler_output(b"[1, 2, 3]").content == [1, 2, 3]

    def test_rich_result(self):
        raw = json.dumps({
            "content": {"a": 1},
            "headers": {"X-Page": "home", "X-Count": 3},
            "cookies": [{"name": "sid", "value": "abc", "httpOnly": True}, "theme=dark"],
        }).encode()
        output = parse_handler_output(raw)

        assert output.content == {"a": 1}
        assert output.headers == {"X-Page": "home", "X-Count": "3"}
        assert [c.header_value() for c in output.cookies] == ["sid=abc; HttpOnly", "theme=dark"]

    def test_single_cookie_is_wrapped(self):
        output = parse_handler_output(b'{"cookies": "a=1"}')
        assert output.content is None
        assert len(output.cookies) == 1

    def test_redirect(self):
        output = parse_handler_output(b'{"redirectLocation": "/login"}')
        assert output.redirect_location == "/login"

    @pytest.mark.parametrize("raw", [
        b'{"headers": ["X-A"]}',
        b'{"cookies": 5}',
        b'{"cookies": [{"value": "no-name"}]}',
        b'{"redirectLocation": ""}',
        b'{"redirectLocation": 302}',
    ])
    def test_malformed_rich_result(self, raw):
        with pytest.raises(HandlerFailureError):
            parse_handler_output(raw, "page.py")

    @pytest.mark.parametrize("raw", [
        b'{"headers": {"X-Note": "a\\r\\nInjected: 1"}}',
        b'{"headers": {"X-Note": "a\\u0000b"}}',
        b'{"headers": {"X Note": "a"}}',
        b'{"headers": {"X-Note:": "a"}}',
        b'{"headers": {"": "a"}}',
        b'{"redirectLocation": "/login\\r\\nSet-Cookie: a=1"}',
        b'{"cookies": [{"name": "a", "value": "1\\nX: y"}]}',
        b'{"cookies": [{"name": "a", "path": "/\\r"}]}',
        b'{"cookies": ["a=1\\r\\nX-Injected: 1"]}',
    ])
    def test_values_that_would_break_header_lines(self, raw):
        """Header, redirect and cookie fields must each fit on one header line."""
        with pytest.raises(HandlerFailureError):
            parse_handler_output(raw, "page.py")

    @pytest.mark.parametrize("raw", [
        b'{"content": NaN}',
        b'{"content": [Infinity]}',
        b"-Infinity",
    ])
    def test_non_standard_json_constants_are_text(self, raw):
        output = parse_handler_output(raw)
        assert output.content == raw.decode()
        assert output.headers == {}


class TestLocate:
    """Tests for handler lookup."""

    def test_finds_handler_by_stem(self, tmp_path):
        expected = make_handler(tmp_path, "index.py", "print('hi')")
        runner = IsolatedHandler(tmp_path)
        assert runner.locate("/index") == expected

    def test_nested_page(self, tmp_path):
        expected = make_handler(tmp_path, "blog/post.sh", "echo hi")
        runner = IsolatedHandler(tmp_path)
        assert runner.locate("/blog/post") == expected

    def test_first_sorted_match_wins(self, tmp_path):
        make_handler(tmp_path, "index.sh", "echo hi")
        expected = make_handler(tmp_path, "index.js", "console.log('hi')")
        runner = IsolatedHandler(tmp_path)
        assert runner.locate("/index") == expected

    def test_missing_handler(self, tmp_path):
        runner = IsolatedHandler(tmp_path)
        with pytest.raises(HandlerNotFoundError):
            runner.locate("/missing")
        with pytest.raises(HandlerNotFoundError):
            runner.locate("/no/such/dir")


class TestCommandFor:
    """Tests for choosing how a handler is started."""

    def test_python_uses_current_interpreter(self, tmp_path):
        path = make_handler(tmp_path, "index.py", "")
        assert IsolatedHandler(tmp_path).command_for(path) == [sys.executable, str(path)]

    def test_interpreter_map(self, tmp_path):
        path = make_handler(tmp_path, "index.js", "")
        runner = IsolatedHandler(tmp_path, interpreters={".JS": "node --no-warnings"})
        assert runner.command_for(path) == ["node", "--no-warnings", str(path)]

    def test_executable_file(self, tmp_path):
        path = make_handler(tmp_path, "index", "#!/bin/sh\necho hi\n")
        path.chmod(0o755)
        assert IsolatedHandler(tmp_path).command_for(path) == [str(path)]

    def test_unknown_non_executable(self, tmp_path):
        path = make_handler(tmp_path, "index.txt", "hello")
        path.chmod(0o644)
        with pytest.raises(HandlerNotFoundError):
            IsolatedHandler(tmp_path).command_for(path)


class TestInvoke:
    """Tests for running handler processes."""

    @pytest.mark.asyncio
    async def test_payload_on_stdin(self, tmp_path):
        path = make_handler(tmp_path, "echo.py", """
            import json, sys
            request = json.load(sys.stdin)
            print(json.dumps({"content": {"seen": request["path"]}}))
        """)
        runner = IsolatedHandler(tmp_path, timeout=10.0)

        output = await runner.invoke(path, b'{"path": "/echo"}')
        assert output.content == {"seen": "/echo"}

    @pytest.mark.asyncio
    async def test_handler_ignoring_stdin(self, tmp_path):
        path = make_handler(tmp_path, "plain.py", "print('just text')")
        runner = IsolatedHandler(tmp_path, timeout=10.0)

        output = await runner.invoke(path, b"x" * 1024)
        assert output.content == "just text\n"

    @pytest.mark.asyncio
    async def test_stderr_fails_without_waiting_for_exit(self, tmp_path):
        """Error output fails the request even while the handler keeps running."""
        path = make_handler(tmp_path, "noisy.py", """
            import sys, time
            sys.stderr.write("boom")
            sys.stderr.flush()
            time.sleep(30)
        """)
        runner = IsolatedHandler(tmp_path, timeout=10.0)

        with pytest.raises(HandlerFailureError) as exc_info:
            await runner.invoke(path, b"{}")
        assert not isinstance(exc_info.value, HandlerTimeoutError)
        assert exc_info.value.stderr == "boom"

    @pytest.mark.asyncio
    async def test_stderr_after_stdout_still_fails(self, tmp_path):
        path = make_handler(tmp_path, "late.py", """
            import sys
            print("content")
            sys.stdout.flush()
            sys.stderr.write("warning")
        """)
        runner = IsolatedHandler(tmp_path, timeout=10.0)

        with pytest.raises(HandlerFailureError):
            await runner.invoke(path, b"{}")

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path):
        path = make_handler(tmp_path, "exit.py", """
            import sys
            print("partial")
            sys.exit(3)
        """)
        runner = IsolatedHandler(tmp_path, timeout=10.0)

        with pytest.raises(HandlerFailureError) as exc_info:
            await runner.invoke(path, b"{}")
        assert exc_info.value.returncode == 3

    @pytest.mark.asyncio
    async def test_timeout_kills_handler(self, tmp_path):
        path = make_handler(tmp_path, "slow.py", """
            import time
            time.sleep(30)
        """)
        runner = IsolatedHandler(tmp_path, timeout=0.5)

        with pytest.raises(HandlerTimeoutError) as exc_info:
            await runner.invoke(path, b"{}")
        assert exc_info.value.timeout == 0.5
