import pytest

import agent_browser
import pipeline_state
from agent_browser import BrowserCommandError, ElementTimeoutError


class FakeSession:
    """Records every browser action instead of driving agent-browser."""

    def __init__(self, missing=(), row_results=None, fail_on=None):
        self.name = "test_session"
        self.headed = False
        self.calls = []
        self.close_count = 0
        self.missing = set(missing)
        # One bool per result-row wait; True means the row appears
        self.row_results = list(row_results or [])
        # (method, arg) pairs that raise BrowserCommandError
        self.fail_on = set(fail_on or [])
        self.clipboard_ok = True

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        if (method, args[0] if args else None) in self.fail_on:
            raise BrowserCommandError(f"{method} failed")

    def open(self, url):
        self._record("open", url)

    def wait_for_load(self, state="networkidle"):
        self._record("wait_for_load", state)

    def wait_for_selector(self, selector, timeout=10):
        self._record("wait_for_selector", selector)
        if selector == "tr.data-table_row" and self.row_results:
            if not self.row_results.pop(0):
                raise ElementTimeoutError(selector, timeout)
            return
        if selector in self.missing:
            raise ElementTimeoutError(selector, timeout)

    def evaluate(self, js):
        self._record("evaluate", js)
        if "clipboard" in js:
            return self.clipboard_ok
        return True

    def type(self, selector, text):
        self._record("type", selector, text)

    def click(self, selector):
        self._record("click", selector)

    def wait_for_navigation_away(self, path_fragment, timeout=30):
        self._record("wait_for_navigation_away", path_fragment)

    def key_down(self, key):
        self._record("key_down", key)

    def key_up(self, key):
        self._record("key_up", key)

    def press(self, key):
        self._record("press", key)

    def screenshot(self, path):
        self._record("screenshot", path)

    def pause(self, seconds):
        self._record("pause", seconds)

    def close(self):
        self.close_count += 1
        self._record("close")

    def methods(self):
        return [c[0] for c in self.calls]


@pytest.fixture(autouse=True)
def screenshot_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(pipeline_state, "SCREENSHOT_DIR", str(tmp_path / "screenshots"))
    return tmp_path / "screenshots"


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("SPOTIO_USERNAME", "agent@example.com")
    monkeypatch.setenv("SPOTIO_PASSWORD", "hunter2")


@pytest.fixture
def install_session(monkeypatch):
    """Make browser_session() hand out the given FakeSession."""
    stale_closes = []

    def install(session):
        monkeypatch.setattr(agent_browser, "BrowserSession", lambda name, headed=False: session)
        monkeypatch.setattr(
            agent_browser, "run_agent_browser_command",
            lambda args, session=None, timeout=None: stale_closes.append(args) or ""
        )
        return session

    return install
