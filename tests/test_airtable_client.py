import airtable_client
from airtable_client import build_filter_formula, fetch_relevant_locations, to_location


class FakeTable:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.formulas = []

    def all(self, formula=None):
        self.formulas.append(formula)
        if self.error:
            raise self.error
        return self.records


def _row(rec_id, **fields):
    return {"id": rec_id, "createdTime": "2024-01-01T00:00:00.000Z", "fields": fields}


def test_build_filter_formula():
    assert build_filter_formula((2, 3, 4, 5), "UT") == (
        "AND(OR({status}=2,{status}=3,{status}=4,{status}=5),{state}!='UT')"
    )


def test_build_filter_formula_escapes_quotes():
    assert build_filter_formula((1,), "O'X").endswith("{state}!='O\\'X')")


def test_to_location_defaults_missing_fields():
    location = to_location(_row("rec1", status=3))
    assert location == {"id": "rec1", "address": "", "city": "", "state": "", "zip5": "", "status": 3}


def test_fetch_queries_with_filter_and_preserves_order(monkeypatch):
    table = FakeTable([
        _row("rec2", address="10 ELM ST", city="GOSHEN", state="IN", zip5="46526", status=4),
        _row("rec1", address="854 S JACKSON ST", city="NAPPANEE", state="IN", zip5="46550", status=2),
    ])
    monkeypatch.setattr(airtable_client, "get_airtable_table", lambda: table)

    locations = fetch_relevant_locations()

    assert [loc["id"] for loc in locations] == ["rec2", "rec1"]
    assert table.formulas == [build_filter_formula((2, 3, 4, 5), "UT")]


def test_fetch_never_returns_disallowed_rows(monkeypatch):
    table = FakeTable([
        _row("rec1", state="IN", status=1),
        _row("rec2", state="UT", status=2),
        _row("rec3", state="IN"),
        _row("rec4", state="IN", status="5"),
    ])
    monkeypatch.setattr(airtable_client, "get_airtable_table", lambda: table)

    locations = fetch_relevant_locations()

    assert [loc["id"] for loc in locations] == ["rec4"]
    assert locations[0]["status"] == 5


def test_fetch_error_returns_empty_list(monkeypatch):
    table = FakeTable(error=RuntimeError("401 Unauthorized"))
    monkeypatch.setattr(airtable_client, "get_airtable_table", lambda: table)

    assert fetch_relevant_locations() == []


def test_fetch_error_building_client_returns_empty_list(monkeypatch):
    def broken():
        raise ValueError("no api key")

    monkeypatch.setattr(airtable_client, "get_airtable_table", broken)

    assert fetch_relevant_locations() == []
