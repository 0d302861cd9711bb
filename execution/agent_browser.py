"""
Thin session wrapper around the agent-browser CLI.

Every browser action is one `agent-browser` subprocess call scoped to a named
session. The session is owned by whoever entered `browser_session()` and is
closed exactly once when that block exits.
"""

import os
import json
import logging
import subprocess
import time
from contextlib import contextmanager
from typing import Optional, List

logger = logging.getLogger(__name__)

AGENT_BROWSER_BIN = os.getenv("AGENT_BROWSER_BIN", "agent-browser")
DEFAULT_SESSION = os.getenv("AGENT_BROWSER_SESSION", "spotio_pipeline_session")
COMMAND_TIMEOUT = 60  # seconds per CLI call
POLL_INTERVAL = 0.5   # seconds between element checks


class BrowserCommandError(Exception):
    """An agent-browser command failed to run or exited non-zero."""


class ElementTimeoutError(BrowserCommandError):
    """A bounded wait for an element expired."""

    def __init__(self, selector: str, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for {selector}")
        self.selector = selector
        self.timeout = timeout


class NavigationTimeoutError(BrowserCommandError):
    """The page did not leave a path within the allowed time."""

    def __init__(self, path_fragment: str, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting to leave {path_fragment}")
        self.path_fragment = path_fragment
        self.timeout = timeout


def parse_js_json(result):
    """Parse JSON from agent-browser eval results, handling double-encoding."""
    if not isinstance(result, str):
        return result
    try:
        data = json.loads(result)
        # agent-browser may wrap string results in quotes
        if isinstance(data, str):
            data = json.loads(data)
        return data
    except (json.JSONDecodeError, TypeError):
        return result


def run_agent_browser_command(args: List[str], session: Optional[str] = None,
                              timeout: float = COMMAND_TIMEOUT) -> str:
    """Runs a subcommand of the agent-browser CLI and returns its stdout."""
    cmd = [AGENT_BROWSER_BIN]
    if session:
        cmd += ["--session", session]
    cmd += args

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise BrowserCommandError(f"Command timed out after {timeout}s: {args[0]}") from e
    except OSError as e:
        raise BrowserCommandError(f"Could not start {AGENT_BROWSER_BIN}: {e}") from e

    if result.returncode != 0:
        # A leftover daemon makes the CLI exit non-zero even though the action ran
        if "daemon already running" in result.stderr:
            logger.info("Agent browser daemon already running. Proceeding...")
            return result.stdout or "Success: Daemon already running"
        logger.error(f"Command failed: {cmd}\nStderr: {result.stderr}\nStdout: {result.stdout}")
        raise BrowserCommandError(f"{args[0]} failed: {result.stderr.strip() or result.stdout.strip()}")

    return result.stdout


class BrowserSession:
    def __init__(self, name: str = DEFAULT_SESSION, headed: bool = False):
        self.name = name
        self.headed = headed
        self.closed = False

    def _run(self, *args, timeout: float = COMMAND_TIMEOUT) -> str:
        return run_agent_browser_command(list(args), session=self.name, timeout=timeout)

    def open(self, url: str) -> str:
        args = ["open", url]
        if self.headed:
            args.append("--headed")
        return self._run(*args)

    def wait_for_load(self, state: str = "networkidle") -> str:
        return self._run("wait", "--load", state)

    def evaluate(self, js: str):
        return parse_js_json(self._run("eval", js).strip())

    def element_exists(self, selector: str) -> bool:
        return self.evaluate(f"!!document.querySelector({json.dumps(selector)})") is True

    def current_path(self) -> str:
        return self.evaluate("location.pathname")

    def _poll(self, check, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            if check():
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(POLL_INTERVAL)

    def wait_for_selector(self, selector: str, timeout: float = 10) -> None:
        """
        Poll until `selector` matches an element.
        Raises ElementTimeoutError once `timeout` seconds have passed.
        """
        if not self._poll(lambda: self.element_exists(selector), timeout):
            raise ElementTimeoutError(selector, timeout)

    def wait_for_navigation_away(self, path_fragment: str, timeout: float = 30) -> None:
        """
        Poll until the page path no longer contains `path_fragment`.
        Raises NavigationTimeoutError once `timeout` seconds have passed.
        """
        if not self._poll(lambda: path_fragment not in str(self.current_path()), timeout):
            raise NavigationTimeoutError(path_fragment, timeout)

    def type(self, selector: str, text: str) -> str:
        return self._run("type", selector, text)

    def click(self, selector: str) -> str:
        return self._run("click", selector)

    def key_down(self, key: str) -> str:
        return self._run("keydown", key)

    def key_up(self, key: str) -> str:
        return self._run("keyup", key)

    def press(self, key: str) -> str:
        return self._run("press", key)

    def screenshot(self, path: str) -> str:
        return self._run("screenshot", path)

    def pause(self, seconds: float) -> None:
        time.sleep(seconds)

    def close(self) -> None:
        self.closed = True
        self._run("close")


@contextmanager
def browser_session(name: Optional[str] = None, headed: Optional[bool] = None):
    """
    Acquire a browser session for the duration of the block.
    The session is closed exactly once on the way out, whatever happened inside.
    """
    if headed is None:
        headed = os.environ.get("AGENT_BROWSER_HEADED") == "true"
    session = BrowserSession(name or DEFAULT_SESSION, headed=headed)

    # Clear out any daemon left over from an earlier run under the same name
    try:
        run_agent_browser_command(["close"], session=session.name)
    except BrowserCommandError as e:
        logger.debug(f"No stale session to close: {e}")

    logger.info(f"[BROWSER] Session '{session.name}' acquired (headed={headed})")
    try:
        yield session
    finally:
        try:
            session.close()
            logger.info(f"[BROWSER] Session '{session.name}' closed")
        except BrowserCommandError as e:
            logger.error(f"[BROWSER] Failed to close session '{session.name}': {e}")
