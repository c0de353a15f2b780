"""
Tests for catalog parsing, reconciliation and the catalog cache.

Run with: pytest tests/test_catalog.py -v
"""
import io

import pandas as pd
import pytest

from partscan.core.exceptions import CatalogParseError
from partscan.services import catalog as catalog_service
from partscan.services.catalog import (
    CatalogImportReconciler,
    read_table,
    reconcile_rows,
    resolve_field,
)


def xlsx_bytes(sheets):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, index=False)
    return buffer.getvalue()


class TestFieldResolution:
    """Tests for alias-based field extraction."""

    def test_first_declared_alias_wins(self):
        row = {"Part Number": "B2", "partNumber": "A1"}
        assert resolve_field(row, ("partNumber", "Part Number")) == "A1"

    def test_empty_alias_falls_through(self):
        row = {"partNumber": "", "PN": "C3"}
        assert resolve_field(row, ("partNumber", "PN")) == "C3"

    def test_whitespace_cell_wins_then_trims_to_empty(self):
        row = {"partNumber": "  ", "PN": "C3"}
        assert resolve_field(row, ("partNumber", "PN")) == ""

    def test_nan_counts_as_empty(self):
        row = {"partNumber": float("nan"), "codigo": "D4"}
        assert resolve_field(row, ("partNumber", "codigo")) == "D4"


class TestReconcileRows:
    """Tests for mapping loose rows onto catalog items."""

    def test_rejects_row_without_part_number(self):
        report = reconcile_rows([
            {"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"},
            {"PN": "", "Name": "Bad"},
        ])

        assert report.accepted == 1
        assert report.rejected == 1
        assert [i.part_number for i in report.items] == ["X1"]
        assert report.items[0].part_name == "Bolt"
        assert report.items[0].station == "S1"

    def test_rejects_literal_undefined(self):
        report = reconcile_rows([{"partNumber": "undefined", "partName": "Ghost"}])
        assert report.accepted == 0
        assert report.items == []

    def test_portuguese_headers_and_trimming(self):
        report = reconcile_rows([{"codigo": " 77-A ", "nome": " Parafuso ", "posto": "P3 "}])
        item = report.items[0]
        assert (item.part_number, item.part_name, item.station) == ("77-A", "Parafuso", "P3")

    def test_whitespace_part_number_is_rejected(self):
        report = reconcile_rows([{"partNumber": "   ", "Part Number": "X1", "partName": "Bolt"}])
        assert report.accepted == 0
        assert report.rejected == 1

    def test_estacao_header(self):
        report = reconcile_rows([{"PN": "Z9", "estacao": "E1"}])
        assert report.items[0].station == "E1"
        assert report.items[0].part_name == ""

    def test_repeated_part_number_keeps_last(self):
        report = reconcile_rows([
            {"PN": "X1", "Name": "Old"},
            {"PN": "X1", "Name": "New"},
        ])
        assert report.accepted == 2
        assert len(report.items) == 1
        assert report.items[0].part_name == "New"


class TestReadTable:
    """Tests for spreadsheet and CSV parsing."""

    def test_reads_first_sheet_only(self):
        data = xlsx_bytes({
            "Parts": [{"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"}],
            "Ignored": [{"Part Number": "Y2", "Part Name": "Nut", "Station": "S2"}],
        })
        rows = read_table(data, "inventory.xlsx")
        assert rows == [{"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"}]

    def test_numeric_part_numbers_are_text(self):
        data = xlsx_bytes({"Parts": [{"PN": "00123", "Name": "Clip"}]})
        rows = read_table(data, "inventory.xlsx")
        assert rows[0]["PN"] == "00123"

    def test_csv(self):
        data = b"Part Number,Part Name,Station\nX1,Bolt,S1\n,Orphan,\n"
        rows = read_table(data, "inventory.csv")
        assert rows[0] == {"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"}
        assert rows[1]["Part Number"] == ""

    def test_legacy_xls_uses_xlrd(self, monkeypatch):
        calls = []

        def fake_read_excel(source, **kwargs):
            calls.append(kwargs)
            return pd.DataFrame([{"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"}])

        monkeypatch.setattr(catalog_service.pd, "read_excel", fake_read_excel)

        rows = read_table(b"\xd0\xcf\x11\xe0", "inventory.XLS")

        assert rows == [{"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"}]
        assert calls[0]["engine"] == "xlrd"
        assert calls[0]["sheet_name"] == 0

    def test_corrupt_xls_raises(self):
        with pytest.raises(CatalogParseError):
            read_table(b"not a legacy workbook", "inventory.xls")

    def test_garbage_raises(self):
        with pytest.raises(CatalogParseError):
            read_table(b"\x00\x01 not a workbook", "inventory.xlsx")


class TestCatalogImport:
    """Tests for merging imports into the persisted catalog."""

    def test_import_scenario(self, persistence, catalog_store):
        reconciler = CatalogImportReconciler(persistence, catalog_store)

        report = reconciler.import_rows([
            {"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"},
            {"PN": "", "Name": "Bad"},
        ])

        assert report.accepted == 1
        catalog = persistence.list_catalog()
        assert [i.part_number for i in catalog] == ["X1"]

    def test_reimport_overwrites(self, persistence, catalog_store):
        reconciler = CatalogImportReconciler(persistence, catalog_store)
        reconciler.import_rows([{"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"}])
        reconciler.import_rows([{"Part Number": "X1", "Part Name": "Bolt-v2", "Station": "S2"}])

        catalog = persistence.list_catalog()
        assert len(catalog) == 1
        assert catalog[0].part_name == "Bolt-v2"
        assert catalog[0].station == "S2"

    def test_import_is_idempotent(self, persistence, catalog_store):
        reconciler = CatalogImportReconciler(persistence, catalog_store)
        row = {"partNumber": "K5", "partName": "Gasket", "station": "S4"}
        reconciler.import_rows([row])
        reconciler.import_rows([row])
        assert len(persistence.list_catalog()) == 1

    def test_cache_refreshed_after_import(self, persistence, catalog_store):
        reconciler = CatalogImportReconciler(persistence, catalog_store)
        assert catalog_store.snapshot() == ()

        reconciler.import_rows([{"PN": "B2"}, {"PN": "A1"}])

        assert [i.part_number for i in catalog_store.snapshot()] == ["A1", "B2"]

    def test_zero_rows_writes_nothing(self, persistence, catalog_store, monkeypatch):
        calls = []
        monkeypatch.setattr(persistence, "upsert_catalog_rows", lambda rows: calls.append(rows))
        reconciler = CatalogImportReconciler(persistence, catalog_store)

        report = reconciler.import_rows([{"PN": ""}, {"Name": "only a name"}])

        assert report.accepted == 0
        assert report.rejected == 2
        assert calls == []

    def test_parse_error_leaves_catalog_unchanged(self, persistence, catalog_store):
        reconciler = CatalogImportReconciler(persistence, catalog_store)
        reconciler.import_rows([{"PN": "X1", "Name": "Bolt"}])

        with pytest.raises(CatalogParseError):
            reconciler.import_file(b"not a spreadsheet", "broken.xlsx")

        assert [i.part_name for i in persistence.list_catalog()] == ["Bolt"]

    def test_import_file(self, persistence, catalog_store):
        reconciler = CatalogImportReconciler(persistence, catalog_store)
        data = xlsx_bytes({"Sheet1": [
            {"Part Number": "X1", "Part Name": "Bolt", "Station": "S1"},
            {"Part Number": "X2", "Part Name": "Washer", "Station": "S1"},
        ]})

        report = reconciler.import_file(data, "inventory.xlsx")

        assert report.accepted == 2
        assert report.message == "2 items integrated into cloud catalog."
        assert len(catalog_store) == 2
