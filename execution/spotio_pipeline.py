import os
from dotenv import load_dotenv

current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)

# Load .env BEFORE other imports; the client modules read env at import time
load_dotenv(os.path.join(project_root, ".env"))
load_dotenv(os.path.join(current_dir, ".env"))

import argparse
import logging

from agent_orchestrator import run_automation
import pipeline_state

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Spotio pipeline address search")
    parser.add_argument(
        "--headed", action="store_true",
        help="Show the browser window (same as AGENT_BROWSER_HEADED=true)"
    )
    args = parser.parse_args(argv)

    result = run_automation(headed=True if args.headed else None)

    for entry in pipeline_state.get_history():
        logger.info(f"  {entry['outcome']:<8} {entry['id']}  {entry['address']}")

    status = pipeline_state.get_status()
    logger.info(
        f"Run {status['status']}: {result['clicked']} clicked, {result['skipped']} skipped "
        f"of {result['total']} locations"
    )
    if result.get("error"):
        logger.error(f"Run stopped early: {result['error']}")


if __name__ == "__main__":
    main()
