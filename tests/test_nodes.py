"""Tests for the row model, output nodes, diagnostics and provenance."""

import logging
import os
import shutil
import sys
import tempfile
import unittest

from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from avails_mapping.diagnostics import Category, DiagnosticLog, Severity
from avails_mapping.nodes import new_node, to_xml_string
from avails_mapping.provenance import ProvenanceTracker, write_provenance_report
from avails_mapping.rows import Cell, Node, Pedigree, Row, build_rows, is_skipped_row


class TestRows(unittest.TestCase):

    def test_values_are_stripped_text(self):
        row = Row(7, {"Avail/ALID": "  ALID-1 ", "AvailTrans/PriceValue": 3,
                      "Avail/UV_ID": None})
        self.assertEqual(row.value("Avail/ALID"), "ALID-1")
        self.assertEqual(row.value("AvailTrans/PriceValue"), "3")
        self.assertEqual(row.value("Avail/UV_ID"), "")

    def test_get_carries_cell(self):
        row = Row(7, {"Avail/ALID": "ALID-1"})
        ped = row.get("Avail/ALID")
        self.assertEqual(ped.raw_value, "ALID-1")
        self.assertEqual(ped.source, Cell(7, "Avail/ALID"))

    def test_undefined_column_is_empty(self):
        row = Row(7, {"Avail/ALID": "ALID-1"})
        self.assertFalse(row.has("Avail/Licensee"))
        ped = row.get("Avail/Licensee")
        self.assertTrue(ped.is_empty())
        self.assertIsNone(ped.source)

    def test_split_drops_blanks(self):
        self.assertEqual(Pedigree("US, CA,, ").split(), ["US", "CA"])
        self.assertEqual(Pedigree("a;b").split(";"), ["a", "b"])

    def test_skipped_rows(self):
        self.assertTrue(is_skipped_row(None))
        self.assertTrue(is_skipped_row("  "))
        self.assertTrue(is_skipped_row("// comment"))
        self.assertFalse(is_skipped_row("Full Extract"))

    def test_build_rows_numbering(self):
        rows = build_rows([{"A/B": "1"}, {"A/B": "2"}])
        self.assertEqual([r.row_number for r in rows], [3, 4])

    def test_locator_descriptions(self):
        self.assertEqual(Cell(4, "Avail/ALID").describe(),
                         "row 4, column 'Avail/ALID'")
        self.assertEqual(Node("/Avail/ALID").describe(), "node /Avail/ALID")


class TestOutputNode(unittest.TestCase):

    def setUp(self):
        self.root = new_node("avails:Avail")
        self.alid = self.root.append(new_node("avails:ALID", "ALID-1"))
        self.asset = self.root.append(new_node("avails:Asset"))
        self.asset.append(new_node("avails:WorkType", "Movie"))

    def test_qualified_names(self):
        self.assertEqual(self.alid.tag, "ALID")
        self.assertEqual(self.alid.ns, "avails")
        self.assertEqual(self.alid.qname, "avails:ALID")

    def test_navigation(self):
        self.assertIs(self.root.child("ALID"), self.alid)
        self.assertEqual(self.root.find("Asset/WorkType").text, "Movie")
        self.assertIsNone(self.root.find("Asset/Metadata"))
        self.assertEqual(self.root.find("Asset/WorkType").path(),
                         "Avail/Asset/WorkType")

    def test_reparenting_moves_node(self):
        other = new_node("avails:Avail")
        other.append(self.alid)
        self.assertIsNone(self.root.child("ALID"))
        self.assertIs(self.alid.parent, other)

    def test_insert_before_and_after(self):
        flag = new_node("avails:ExceptionFlag", "false")
        self.root.insert_after(flag, self.alid)
        disp = new_node("avails:Disposition")
        self.root.insert_before(disp, flag)
        self.assertEqual([c.tag for c in self.root.children],
                         ["ALID", "Disposition", "ExceptionFlag", "Asset"])

    def test_structure_ignores_identity(self):
        copy = new_node("avails:Avail")
        copy.append(new_node("avails:ALID", "ALID-1"))
        asset = copy.append(new_node("avails:Asset"))
        asset.append(new_node("avails:WorkType", "Movie"))
        self.assertEqual(copy.structure(), self.root.structure())
        asset.set("contentID", "X")
        self.assertNotEqual(copy.structure(), self.root.structure())

    def test_is_empty(self):
        self.assertTrue(new_node("avails:Ratings").is_empty())
        self.assertFalse(self.root.is_empty())

    def test_xml_string(self):
        text = to_xml_string(self.root, {"avails": "urn:test"})
        self.assertIn('<avails:Avail xmlns:avails="urn:test">', text)
        self.assertIn("<avails:ALID>ALID-1</avails:ALID>", text)


class TestDiagnosticLog(unittest.TestCase):

    def test_counts_and_errors(self):
        log = DiagnosticLog()
        log.error(Category.INVALID_FORMAT, "bad date")
        log.info(Category.REDUNDANT_DEFINITION, "redundant")
        log.emit(Severity.WARNING, Category.INVALID_FORMAT, "odd value")
        self.assertEqual(len(log), 3)
        self.assertEqual(log.count(Category.INVALID_FORMAT), 2)
        self.assertEqual(log.count(min_severity=Severity.WARNING), 2)
        self.assertEqual([e.message for e in log.errors()], ["bad date"])

    def test_format(self):
        log = DiagnosticLog()
        event = log.error(Category.MISSING_REQUIRED_FIELD, "Missing ALID",
                          locator=Cell(5, "Avail/ALID"), details="row 5")
        self.assertEqual(
            event.format(),
            "[MissingRequiredField] Missing ALID "
            "(row 5, column 'Avail/ALID'): row 5",
        )

    def test_forwarded_to_logging(self):
        log = DiagnosticLog()
        with self.assertLogs("avails_mapping.registry", level="ERROR") as cm:
            log.error(Category.INCONSISTENT_REDEFINITION, "mismatch",
                      module="registry")
        self.assertIn("mismatch", cm.output[0])

    def test_fatal_maps_to_critical(self):
        self.assertEqual(int(Severity.FATAL), logging.CRITICAL)


class TestProvenance(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.tracker = ProvenanceTracker()
        self.root = new_node("avails:AvailList")
        self.avail = self.root.append(new_node("avails:Avail"))
        self.alid = self.avail.append(new_node("avails:ALID", "ALID-1"))
        self.ped = Pedigree("ALID-1", Cell(3, "Avail/ALID"))
        self.tracker.record(self.alid, self.ped)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_lookup_by_identity(self):
        twin = new_node("avails:ALID", "ALID-1")
        self.assertIs(self.tracker.lookup(self.alid), self.ped)
        self.assertIsNone(self.tracker.lookup(twin))
        self.assertIn(self.alid, self.tracker)
        self.assertNotIn(twin, self.tracker)

    def test_attributes_tracked_separately(self):
        ped = Pedigree("TX-1", Cell(3, "Avail/AvailID"))
        self.tracker.record(self.avail, ped, attribute="TransactionID")
        self.assertIs(self.tracker.lookup(self.avail, "TransactionID"), ped)
        self.assertIsNone(self.tracker.lookup(self.avail))

    def test_locate_walks_up(self):
        inner = self.alid.append(new_node("md:Note", "x"))
        self.assertEqual(self.tracker.locate(inner), Cell(3, "Avail/ALID"))
        self.assertIsNone(self.tracker.locate(self.root))

    def test_report_skips_detached_nodes(self):
        stray = new_node("avails:ALID", "ALID-9")
        self.tracker.record(stray, Pedigree("ALID-9", Cell(9, "Avail/ALID")))
        path = write_provenance_report(
            self.tracker, os.path.join(self.test_dir, "prov.xlsx"), self.root)
        wb = load_workbook(path)
        values = [r[1] for r in
                  wb["Values"].iter_rows(min_row=2, values_only=True)]
        wb.close()
        self.assertEqual(values, ["ALID-1"])


if __name__ == "__main__":
    unittest.main()
