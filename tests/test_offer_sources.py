"""Loading offer sheets from disk."""

import pandas as pd
import pytest

from card_matcher import SOURCE_KIND_PERMANENT, build_candidate_index, collect_offers
from offer_sources import (
    DATA_DIR_ENV,
    DEFAULT_SOURCES,
    SourceConfig,
    load_source,
    load_sources,
    read_table,
    resolve_data_dir,
)


def _write_csv(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_read_table_keeps_text_and_strips_headers(tmp_path):
    csv_path = _write_csv(
        tmp_path / "goibibo.csv",
        "Offer Title ,Eligible Credit Cards,Coupon\n"
        "Flat 10% off,\"HDFC Regalia (Visa Signature), ICICI Amazon Pay\",00123\n"
        ",,\n"
        "No coupon,Axis Atlas,\n",
    )
    df = read_table(str(csv_path))

    assert list(df.columns) == ["Offer Title", "Eligible Credit Cards", "Coupon"]
    assert len(df) == 2
    assert df.loc[0, "Coupon"] == "00123"
    assert df.loc[1, "Coupon"] == ""


def test_read_table_excel(tmp_path):
    xlsx_path = tmp_path / "ixigo.xlsx"
    pd.DataFrame({"Title": ["ixigo AU offer"], "Eligible Cards": ["AU LIT"]}).to_excel(xlsx_path, index=False)
    df = read_table(str(xlsx_path))
    assert df.loc[0, "Eligible Cards"] == "AU LIT"


def test_load_source_builds_rows(tmp_path):
    _write_csv(tmp_path / "permanent.csv", "Credit Card Name,Flight Benefit\nAxis Atlas,Miles\n")
    config = SourceConfig("Permanent", "permanent.csv", SOURCE_KIND_PERMANENT, "Permanent Offers")
    source = load_source(config, str(tmp_path))

    assert source.error is None
    assert source.is_permanent
    assert source.heading == "Permanent Offers"
    assert source.rows == ({"Credit Card Name": "Axis Atlas", "Flight Benefit": "Miles"},)


def test_missing_and_broken_sources_become_empty(tmp_path):
    _write_csv(tmp_path / "good.csv", "Title,Eligible Cards\nDeal,HDFC Regalia\n")
    _write_csv(tmp_path / "empty.csv", "")
    _write_csv(tmp_path / "notes.txt", "not a table")
    configs = [
        SourceConfig("Missing", "missing.csv"),
        SourceConfig("Empty", "empty.csv"),
        SourceConfig("Text", "notes.txt"),
        SourceConfig("Good", "good.csv"),
    ]
    sources, stats = load_sources(configs, str(tmp_path))

    assert [s.name for s in sources] == ["Missing", "Empty", "Text", "Good"]
    assert [len(s.rows) for s in sources] == [0, 0, 0, 1]
    assert stats['failed'] == ["Missing", "Empty", "Text"]
    assert stats['loaded'] == 1
    assert stats['total_rows'] == 1
    assert len(stats['warnings']) == 3

    index = build_candidate_index(sources)
    assert [c.display for c in index.credit] == ["HDFC Regalia"]


def test_data_dir_resolution(monkeypatch, tmp_path):
    monkeypatch.delenv(DATA_DIR_ENV, raising=False)
    assert resolve_data_dir().endswith("data")
    monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path))
    assert resolve_data_dir() == str(tmp_path)
    assert resolve_data_dir("/explicit") == "/explicit"


def test_bundled_sample_data_loads():
    sources, stats = load_sources(DEFAULT_SOURCES)
    assert stats['failed'] == []
    assert [s.name for s in sources][0] == "Permanent"

    index = build_candidate_index(sources)
    assert "HDFC Regalia" in [c.display for c in index.credit]
    assert "Google Pay" in [c.display for c in index.upi]


def test_bundled_duplicate_offer_shown_once():
    sources, _ = load_sources(DEFAULT_SOURCES)
    index = build_candidate_index(sources)
    regalia = next(c for c in index.credit if c.display == "HDFC Regalia")

    titles = [
        (section.source, w.offer.get("Offer Title"))
        for section in collect_offers(regalia, sources)
        for w in section.wrappers
    ]
    assert ("Goibibo", "Flat 10% off") in titles
    assert ("MakeMyTrip", "Flat 10% off") not in titles


def test_read_table_rejects_legacy_xls(tmp_path):
    xls_path = tmp_path / "legacy.xls"
    xls_path.write_bytes(b"")
    with pytest.raises(ValueError):
        read_table(str(xls_path))
