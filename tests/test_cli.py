"""Tests for the finledgr-learn command."""

import asyncio

from finledgr.cli import load_transactions, main
from finledgr.models.patterns import CategoryType
from finledgr.services.pattern_store import SQLitePatternStore


CSV = """id,description,category_id,category_name,category_type,category_color
1,TESCO STORES 3297,groceries,Groceries,expenditure,#22c55e
2,Tesco Stores 3297,groceries,Groceries,expenditure,#22c55e
3,ACME LTD SALARY,salary,Salary,income,
4,no category,,,,
"""


def write_csv(tmp_path, content=CSV):
    path = tmp_path / "transactions.csv"
    path.write_text(content, encoding="utf-8")
    return path


def test_load_transactions(tmp_path):
    transactions = load_transactions(write_csv(tmp_path))

    assert len(transactions) == 4
    assert transactions[0].category.name == "Groceries"
    assert transactions[2].category.type == CategoryType.INCOME
    assert transactions[2].category.color is None
    assert transactions[3].category_id is None
    assert transactions[3].category is None


def test_main_learns_into_sqlite(tmp_path, capsys):
    db_path = str(tmp_path / "state.sqlite3")
    code = main(["--user", "user-1", "--csv", str(write_csv(tmp_path)), "--db", db_path])

    assert code == 0
    out = capsys.readouterr().out
    assert "Patterns created: 3" in out
    assert "Groceries" in out

    patterns = asyncio.run(SQLitePatternStore(db_path=db_path).list_patterns("user-1"))
    assert {p.pattern for p in patterns} == {r"\btesco\b", r"\bstores\b", r"tesco\s+stores"}


def test_main_missing_file(tmp_path, capsys):
    code = main(["--user", "user-1", "--csv", str(tmp_path / "missing.csv")])
    assert code == 1
    assert "not found" in capsys.readouterr().err


def test_main_bad_category_type(tmp_path):
    path = write_csv(tmp_path, "id,description,category_id,category_name,category_type\n1,x,c,C,bogus\n")
    assert main(["--user", "user-1", "--csv", str(path), "--db", str(tmp_path / "db.sqlite3")]) == 1
