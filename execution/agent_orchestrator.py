import os
import sys
import json
import logging
from typing import Dict, Any, Callable, List, Optional

import pipeline_state
from agent_browser import BrowserSession, BrowserCommandError, ElementTimeoutError, browser_session
from airtable_client import fetch_relevant_locations

logger = logging.getLogger(__name__)

# Spotio pages
LOGIN_URL = "https://app.spotio2.com/login"
PIPELINE_URL = "https://app.spotio2.com/pipeline"
LOGIN_PATH = "/login"

# DOM contract. These must match the live app exactly.
EMAIL_INPUT = 'input[name="email"]'
PASSWORD_INPUT = 'input[name="password"]'
# Same button class for "Next" on the email step and "Sign In" on the password step
SIGN_IN_BUTTON = 'button.button.sign-content_button.-block.-preset-primary.-size-big'
SEARCH_INPUT = 'input[preset="gray"][placeholder="Search for records"]'
TABLE_ROW = 'tr.data-table_row'

# Element wait bounds (seconds)
EMAIL_TIMEOUT = 10
PASSWORD_TIMEOUT = 60
LOGIN_REDIRECT_TIMEOUT = 60
SEARCH_INPUT_TIMEOUT = 10
ROW_TIMEOUT = 10

# Pacing (seconds). Spotio gives no completion signal for the search, so these are fixed.
PASTE_SETTLE_DELAY = 0.5
NEXT_LOCATION_DELAY = 5
FINAL_DELAY = 60


def compose_full_address(location: Dict[str, Any]) -> str:
    """Single-line search string, e.g. "854 S JACKSON ST, NAPPANEE, IN 46550"."""
    address = location.get("address") or ""
    city = location.get("city") or ""
    state = location.get("state") or ""
    zip5 = location.get("zip5") or ""
    return f"{address}, {city}, {state} {zip5}"


def perform_login(session: BrowserSession, email: Optional[str] = None, password: Optional[str] = None) -> bool:
    """
    Deterministic two-step login (email, then password).
    Returns True on success, raises on failure.
    """
    email = email or os.getenv("SPOTIO_USERNAME")
    password = password or os.getenv("SPOTIO_PASSWORD")

    if not email or not password:
        logger.error("SPOTIO_USERNAME or SPOTIO_PASSWORD not set in environment")
        raise ValueError("SPOTIO_USERNAME or SPOTIO_PASSWORD not set in environment")

    logger.info("[LOGIN] Step 1: Opening login page...")
    session.open(LOGIN_URL)
    session.wait_for_load("networkidle")

    logger.info("[LOGIN] Step 2: Typing email...")
    session.wait_for_selector(EMAIL_INPUT, timeout=EMAIL_TIMEOUT)
    session.type(EMAIL_INPUT, email)
    session.click(SIGN_IN_BUTTON)

    logger.info("[LOGIN] Step 3: Typing password...")
    session.wait_for_selector(PASSWORD_INPUT, timeout=PASSWORD_TIMEOUT)
    session.type(PASSWORD_INPUT, password)
    session.click(SIGN_IN_BUTTON)

    # Redirect off the login page, then let the new page settle
    session.wait_for_navigation_away(LOGIN_PATH, timeout=LOGIN_REDIRECT_TIMEOUT)
    session.wait_for_load("networkidle")
    logger.info("[LOGIN] Login submitted, navigation settled.")
    return True


def open_pipeline(session: BrowserSession):
    logger.info(f"[PIPELINE] Opening {PIPELINE_URL}...")
    session.open(PIPELINE_URL)
    session.wait_for_load("networkidle")
    session.wait_for_selector(SEARCH_INPUT, timeout=SEARCH_INPUT_TIMEOUT)
    logger.info("[PIPELINE] Search input is ready.")


def clear_search_input(session: BrowserSession):
    """Empty the search box by assigning its value directly rather than typing."""
    selector = json.dumps(SEARCH_INPUT)
    session.evaluate(
        f"(() => {{ const input = document.querySelector({selector}); "
        f"if (input) {{ input.value = ''; }} return !!input; }})()"
    )


def write_clipboard(session: BrowserSession, text: str) -> bool:
    """
    Put `text` on the page's clipboard. Failures are logged and swallowed:
    the paste that follows simply pastes whatever the clipboard holds.
    """
    js = (
        f"navigator.clipboard.writeText({json.dumps(text)})"
        ".then(() => true)"
        ".catch(err => { console.error('Failed to write to clipboard:', err); return false; })"
    )
    try:
        ok = session.evaluate(js)
    except BrowserCommandError as e:
        logger.warning(f"[SEARCH] Failed to write to clipboard: {e}")
        return False
    if ok is False:
        logger.warning("[SEARCH] Failed to write to clipboard (rejected by page)")
        return False
    return True


def paste_from_clipboard(session: BrowserSession):
    """Ctrl+V (Cmd+V on macOS) so the app runs its own paste handling."""
    modifier = "Meta" if sys.platform == "darwin" else "Control"
    session.key_down(modifier)
    try:
        session.press("V")
    finally:
        session.key_up(modifier)


def _take_screenshot(session: BrowserSession, name: str):
    try:
        path = pipeline_state.named_screenshot_path(name)
        session.screenshot(path)
        logger.info(f"[SCREENSHOT] Saved: {name}")
    except (BrowserCommandError, OSError) as e:
        logger.warning(f"[SCREENSHOT] Failed: {name}: {e}")


def process_location(session: BrowserSession, location: Dict[str, Any]) -> str:
    """
    Search Spotio for one location's address and open the matching row.
    Returns "clicked", or "skipped" when no row shows up in time.
    """
    location_id = location.get("id", "unknown")
    full_address = compose_full_address(location)

    logger.info(f"[SEARCH] Processing location ID: {location_id}, Address: {full_address}")
    pipeline_state.start_location(location_id, full_address)

    # Clicking focuses the input
    session.click(SEARCH_INPUT)
    clear_search_input(session)

    write_clipboard(session, full_address)
    paste_from_clipboard(session)
    session.pause(PASTE_SETTLE_DELAY)

    try:
        session.wait_for_selector(TABLE_ROW, timeout=ROW_TIMEOUT)
    except ElementTimeoutError:
        logger.warning(f"[SEARCH] No table row found for address: {full_address}. Skipping.")
        _take_screenshot(session, f"no_row_{location_id}")
        outcome = "skipped"
    else:
        logger.info(f"[SEARCH] Table row found for address: {full_address}")
        session.click(TABLE_ROW)
        logger.info(f"[SEARCH] Clicked on table row for address: {full_address}")
        outcome = "clicked"

    pipeline_state.record_outcome(location_id, full_address, outcome)
    session.pause(NEXT_LOCATION_DELAY)
    return outcome


def run_automation(fetch: Callable[[], List[Dict[str, Any]]] = fetch_relevant_locations,
                   headed: Optional[bool] = None) -> Dict[str, Any]:
    """
    Full run: log in, open the pipeline, fetch locations once, work through
    them in order. Any unexpected error ends the run early; the browser is
    closed exactly once either way.
    """
    logger.info("[RUN] Starting pipeline automation...")
    pipeline_state.reset_run()
    summary = {"success": False, "total": 0, "clicked": 0, "skipped": 0, "error": None}

    with browser_session(headed=headed) as session:
        try:
            perform_login(session)
            open_pipeline(session)

            locations = fetch()
            summary["total"] = len(locations)
            pipeline_state.set_total(len(locations))
            logger.info(f"[RUN] {len(locations)} locations to process.")

            for location in locations:
                outcome = process_location(session, location)
                summary[outcome] += 1

            logger.info("[RUN] Completed processing all locations.")
            session.pause(FINAL_DELAY)
            summary["success"] = True
        except Exception as e:
            logger.error(f"[RUN] An error occurred during automation: {e}", exc_info=True)
            summary["error"] = str(e)
            pipeline_state.fail_run(str(e))

    pipeline_state.complete_run(summary)
    logger.info(f"[RUN] Finished: {json.dumps(summary)}")
    return summary
