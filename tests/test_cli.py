import json
from pathlib import Path

import pytest
from db.client import dispose_engine
from typer.testing import CliRunner

from statement_ingest.cli import app, cmd_import, cmd_match, cmd_parse
from tests.helpers.db import seed_obligations

STATEMENT = (
    "Date,Description,Amount,Balance\n"
    "2024-03-01,VODACOM DEBIT ORDER,-1000.00,9000.00\n"
    "2024-03-02,CHECKERS HYDE PARK,-250.00,8750.00\n"
    "2024-03-03,BANK FEE,-1.00,\n"
    "2024-03-25,SALARY ACME,30000.00,38750.00\n"
)


@pytest.fixture
def statement_file(tmp_path: Path) -> Path:
    path = tmp_path / "march.csv"
    path.write_text(STATEMENT, encoding="utf-8")
    return path


def _last_json_line(output: str) -> dict:
    lines = [line for line in output.splitlines() if line.startswith("{")]
    return json.loads(lines[-1])


def test_parse_prints_candidates_and_summary(statement_file: Path):
    result = CliRunner().invoke(app, ["parse", "--file", str(statement_file)])

    assert result.exit_code == 0, result.output
    assert "# Capitec statement" in result.stdout.splitlines()
    assert "2024-03-02\tdebit\t250.00\tGROCERIES\tCHECKERS HYDE PARK" in result.stdout
    assert "# format=capitec transactions=4 debits=1251.00 credits=30000.00" in result.stdout


def test_parse_with_forced_bank(statement_file: Path):
    result = CliRunner().invoke(app, ["parse", "--file", str(statement_file), "--bank", "generic"])

    assert result.exit_code == 0, result.output
    assert "# format=generic" in result.stdout


def test_parse_missing_file_exits_non_zero(tmp_path: Path):
    result = CliRunner().invoke(app, ["parse", "--file", str(tmp_path / "nope.csv")])

    assert result.exit_code == 1


def test_parse_unknown_bank_reports_error(statement_file: Path, capsys):
    code = cmd_parse(str(statement_file), bank="monzo")

    assert code == 1
    assert "unknown bank format" in capsys.readouterr().err


def test_import_prints_result_json(statement_file: Path, db_url: str):
    seed_obligations(
        database_url=db_url,
        user_id="u1",
        rows=[{"name": "Cellphone contract", "provider": "Vodacom", "amount": "1000.00"}],
    )
    args = ["import", "--file", str(statement_file), "--user-id", "u1", "--database-url", db_url]

    first = CliRunner().invoke(app, args)
    second = CliRunner().invoke(app, args)

    assert first.exit_code == 0, first.output
    assert _last_json_line(first.stdout) == {
        "imported": 4,
        "skipped": 0,
        "total": 4,
        "errors": [],
        "obligationsMarked": 1,
    }
    assert second.exit_code == 0, second.output
    assert _last_json_line(second.stdout) == {
        "imported": 0,
        "skipped": 4,
        "total": 4,
        "errors": [],
        "obligationsMarked": 0,
    }


def test_import_rejects_unknown_mode(statement_file: Path, db_url: str):
    result = CliRunner().invoke(
        app,
        ["import", "--file", str(statement_file), "--user-id", "u1", "--mode", "debits"],
    )

    assert result.exit_code == 1


def test_match_lists_proposals(statement_file: Path, db_url: str):
    seed_obligations(
        database_url=db_url,
        user_id="u1",
        rows=[{"name": "Cellphone contract", "provider": "Vodacom", "amount": "1000.00"}],
    )

    result = CliRunner().invoke(
        app,
        ["match", "--file", str(statement_file), "--user-id", "u1", "--database-url", db_url],
    )

    assert result.exit_code == 0, result.output
    proposals = [
        line for line in result.stdout.splitlines() if line.startswith(("high", "medium", "low"))
    ]
    assert proposals == [
        "high\t2024-03-01\tCellphone contract\t1000.00\t"
        'Provider "Vodacom" found in description with matching amount'
    ]


def test_user_settings_without_a_database_is_reported(statement_file: Path, capsys):
    code = cmd_parse(str(statement_file), user_id="u1")

    assert code == 1
    err = capsys.readouterr().err
    assert err.startswith("Error: ")
    assert "DATABASE_URL" in err


@pytest.mark.parametrize("handler", [cmd_parse, cmd_match, cmd_import])
def test_database_without_schema_is_reported(
    handler, statement_file: Path, tmp_path: Path, capsys
):
    url = f"sqlite+pysqlite:///{tmp_path / 'empty.sqlite3'}"

    try:
        code = handler(str(statement_file), user_id="u1", database_url=url)
    finally:
        dispose_engine()

    assert code == 1
    assert "no such table" in capsys.readouterr().err
