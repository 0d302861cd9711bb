import os
import logging
from typing import List, Dict, Iterable, Optional
from pyairtable import Api

logger = logging.getLogger(__name__)

# Load environment variables
AIRTABLE_ENDPOINT_URL = os.getenv("AIRTABLE_ENDPOINT_URL")
AIRTABLE_API_KEY = os.getenv("AIRTABLE_API_KEY")
AIRTABLE_BASE_ID = os.getenv("AIRTABLE_BASE_ID")
AIRTABLE_TABLE_NAME = os.getenv("AIRTABLE_TABLE_NAME", "restaurants")

# Rows with these statuses are worked; rows in the excluded state never are
ALLOWED_STATUSES = (2, 3, 4, 5)
EXCLUDED_STATE = "UT"

if not AIRTABLE_API_KEY or not AIRTABLE_BASE_ID:
    logger.warning("Airtable credentials not set. Location fetch will return no records.")

def get_airtable_table():
    if AIRTABLE_ENDPOINT_URL:
        api = Api(AIRTABLE_API_KEY, endpoint_url=AIRTABLE_ENDPOINT_URL)
    else:
        api = Api(AIRTABLE_API_KEY)
    return api.table(AIRTABLE_BASE_ID, AIRTABLE_TABLE_NAME)

def build_filter_formula(statuses: Iterable[int], excluded_state: str) -> str:
    """
    Airtable formula equivalent to: status IN (statuses) AND state != excluded_state.
    """
    status_terms = ",".join(f"{{status}}={int(s)}" for s in statuses)
    safe_state = excluded_state.replace("'", "\\'")
    return f"AND(OR({status_terms}),{{state}}!='{safe_state}')"

def _coerce_status(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

def to_location(record: Dict) -> Dict:
    """Flattens an Airtable row into the dict the automation works from."""
    fields = record.get("fields", {})
    return {
        "id": record["id"],
        "address": fields.get("address") or "",
        "city": fields.get("city") or "",
        "state": fields.get("state") or "",
        "zip5": fields.get("zip5") or "",
        "status": _coerce_status(fields.get("status")),
    }

def matches_filter(location: Dict, statuses: Iterable[int], excluded_state: str) -> bool:
    return location["status"] in set(statuses) and location["state"] != excluded_state

def fetch_relevant_locations(
    statuses: Iterable[int] = ALLOWED_STATUSES,
    excluded_state: str = EXCLUDED_STATE
) -> List[Dict]:
    """
    Fetches every location whose status is in `statuses` and whose state
    is not `excluded_state`, in the order Airtable returns them.

    Never raises: a failed query is logged and yields an empty list.
    """
    statuses = tuple(statuses)
    try:
        table = get_airtable_table()
        formula = build_filter_formula(statuses, excluded_state)
        records = table.all(formula=formula)

        locations = []
        for r in records:
            location = to_location(r)
            if not matches_filter(location, statuses, excluded_state):
                logger.warning(f"Dropping {location['id']}: status={location['status']} state={location['state']!r} outside filter")
                continue
            locations.append(location)

        logger.info(f"Fetched {len(locations)} locations with statuses {list(statuses)} excluding state '{excluded_state}'.")
        return locations
    except Exception as e:
        logger.error(f"Failed to fetch locations: {e}")
        return []
