import json
from pathlib import Path

import pandas as pd
import pytest

from tradeledger.cli import main
from tradeledger.config import DEFAULT_ENCODINGS, load_settings


@pytest.fixture
def export_file(tmp_path, domestic_csv):
    path = tmp_path / "tradehistory(JP).csv"
    path.write_bytes(domestic_csv.encode("cp932"))
    return path


def run(capsys, *argv):
    code = main(list(argv))
    return code, capsys.readouterr()


def test_import_then_query(tmp_path, export_file, capsys):
    store_dir = str(tmp_path / "ledger")

    code, out = run(capsys, "--store-dir", store_dir, "import", str(export_file), "--format", "JP")
    assert code == 0
    assert json.loads(out.out)["upsert"]["inserted"] == 3

    code, out = run(capsys, "--store-dir", store_dir, "stats")
    assert code == 0
    assert json.loads(out.out)["total"] == 3

    code, out = run(capsys, "--store-dir", store_dir, "positions")
    positions = json.loads(out.out)
    assert {p["instrument_key"] for p in positions} == {"東証:7203", "東証:6758"}

    code, out = run(capsys, "--store-dir", store_dir, "exposure", "--to", "2024-01-12")
    exposure = json.loads(out.out)
    assert exposure["sector"][0]["key"] == "Unclassified"
    assert exposure["sector"][0]["percentage"] == 100.0


def test_export_csv(tmp_path, export_file, capsys):
    store_dir = str(tmp_path / "ledger")
    run(capsys, "--store-dir", store_dir, "import", str(export_file))
    out_path = tmp_path / "ledger.csv"

    code, _ = run(capsys, "--store-dir", store_dir, "export", str(out_path))
    assert code == 0
    df = pd.read_csv(out_path, encoding="utf-8-sig")
    assert len(df) == 3
    assert df["trade_date"].iloc[0] == "2024-01-20"


def test_missing_file_exits_nonzero(tmp_path, capsys):
    code, out = run(capsys, "--store-dir", str(tmp_path), "import", str(tmp_path / "nope.csv"))
    assert code == 1
    assert out.err.startswith("error:")


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("TRADELEDGER_STORE_DIR", str(tmp_path))
    monkeypatch.setenv("TRADELEDGER_BASE_CURRENCY", " usd ")
    monkeypatch.setenv("TRADELEDGER_ENCODINGS", "utf-8, cp932")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.store_dir == Path(tmp_path)
    assert settings.base_currency == "USD"
    assert settings.encodings == ("utf-8", "cp932")
    assert settings.log_level == "DEBUG"


def test_settings_defaults(monkeypatch):
    for name in ("TRADELEDGER_NAMESPACE", "TRADELEDGER_SOURCE", "TRADELEDGER_ENCODINGS"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.namespace == "investment-"
    assert settings.source == "rakuten"
    assert settings.encodings == DEFAULT_ENCODINGS
