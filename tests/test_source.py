from sqlalchemy import create_engine, text

from sagesync_source import SageInventorySource

QUERY = """
    SELECT item AS ItemNumber, descr AS Description, loc AS Location,
           qty AS QuantityOnHand, minimum AS MinimumStock, cost AS LastCost
    FROM iciloc ORDER BY item
"""


def make_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'sage.db'}")
    with engine.begin() as cx:
        cx.execute(text("CREATE TABLE iciloc (item TEXT, descr TEXT, loc TEXT, qty REAL, minimum REAL, cost REAL)"))
        cx.execute(
            text("INSERT INTO iciloc VALUES (:i, :d, :l, :q, :m, :c)"),
            [
                {"i": "201001001", "d": "CONECTOR TH", "l": "GRAL", "q": 15, "m": 0, "c": 3.37},
                {"i": "301002", "d": "NONEL LP", "l": "GRAL", "q": 2, "m": 1, "c": 10.5},
            ],
        )
    return engine


def test_fetch_inventory_returns_named_rows(tmp_path):
    source = SageInventorySource(make_engine(tmp_path), QUERY)
    rows = source.fetch_inventory()
    assert [r["ItemNumber"] for r in rows] == ["201001001", "301002"]
    assert rows[0]["Location"] == "GRAL"
    assert rows[0]["LastCost"] == 3.37


def test_validate_connection_ok(tmp_path):
    assert SageInventorySource(make_engine(tmp_path)).validate_connection()


def test_validate_connection_reports_failure(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'sage.db'}")
    assert SageInventorySource(engine).validate_connection() is False


def test_default_query_used_when_none_given(tmp_path):
    source = SageInventorySource(make_engine(tmp_path))
    assert "ICILOC" in source.query
