"""Tests for cross-row aggregation: Avails, Assets, entitlements and
consistency checking."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from avails_mapping.diagnostics import Category, Severity
from avails_mapping.ingest import ingest_rows
from avails_mapping.rows import Cell

from create_sample_avails import episode_row, movie_row, rows


def _avail(result, alid):
    for avail in result.root.children_named("Avail"):
        if avail.child("ALID").text == alid:
            return avail
    return None


# ---------------------------------------------------------------------------
# Avail aggregation
# ---------------------------------------------------------------------------

class TestAvailAggregation:
    def test_single_row(self):
        result = ingest_rows(rows(movie_row()))
        assert result.root.tag == "AvailList"
        assert len(result.root.children) == 1
        avail = result.root.child("Avail")
        assert avail.child("AvailType").text == "single"
        assert avail.find("Licensor/DisplayName").text == "Studio X"
        assert avail.find("ServiceProvider/DisplayName").text == "Foo"
        assert avail.find("Disposition/EntryType").text == "Full Extract"
        assert avail.child("ExceptionFlag").text == "false"
        assert result.diagnostics.errors() == []

    def test_rows_grouped_by_alid_in_first_occurrence_order(self):
        result = ingest_rows(rows(
            movie_row(),
            movie_row(**{"Avail/ALID": "ALID-002",
                         "AvailAsset/ContentID": "md:cid:org:studio:movie-2",
                         "Avail/AvailID": "TX-2"}),
            movie_row(**{"AvailTrans/Territory": "CA",
                         "Avail/AvailID": "TX-3"}),
        ))
        alids = [a.child("ALID").text
                 for a in result.root.children_named("Avail")]
        assert alids == ["ALID-001", "ALID-002"]
        first = _avail(result, "ALID-001")
        ids = [t.get("TransactionID")
               for t in first.children_named("Transaction")]
        assert ids == ["TX-1", "TX-3"]
        assert len(first.children_named("Asset")) == 1

    @pytest.mark.parametrize("order", [(0, 1, 2), (2, 0, 1), (1, 2, 0)])
    def test_one_avail_per_alid_regardless_of_order(self, order):
        records = [
            movie_row(),
            movie_row(**{"AvailTrans/Territory": "CA", "Avail/AvailID": "TX-2"}),
            movie_row(**{"AvailTrans/Territory": "GB", "Avail/AvailID": "TX-3"}),
        ]
        result = ingest_rows(rows(*[records[i] for i in order]))
        avails = result.root.children_named("Avail")
        assert len(avails) == 1
        assert len(avails[0].children_named("Transaction")) == 3
        assert len(avails[0].children_named("Asset")) == 1

    def test_child_order(self):
        result = ingest_rows(rows(movie_row(**{"Avail/UV_ID": "UV-1"})))
        tags = [c.tag for c in result.root.child("Avail").children]
        assert tags == ["ALID", "Disposition", "Licensor", "ServiceProvider",
                        "AvailType", "ShortDescription", "SharedEntitlement",
                        "Transaction", "Asset", "ExceptionFlag"]

    def test_missing_alid_skips_row(self):
        result = ingest_rows(rows(movie_row(), movie_row(**{"Avail/ALID": ""})))
        assert len(result.root.children) == 1
        assert result.diagnostics.count(Category.MISSING_REQUIRED_FIELD) == 1
        assert result.rows_processed == 2

    def test_service_provider_optional(self):
        result = ingest_rows(rows(movie_row(**{"Avail/ServiceProvider": ""})))
        assert result.root.find("Avail/ServiceProvider") is None


class TestConsistency:
    def test_first_definition_wins(self):
        result = ingest_rows(rows(
            movie_row(),
            movie_row(**{"Avail/ServiceProvider": "Bar",
                         "AvailTrans/Territory": "CA"}),
        ))
        events = [e for e in result.diagnostics
                  if e.category == Category.INCONSISTENT_REDEFINITION]
        assert len(events) == 1
        assert events[0].severity == Severity.ERROR
        assert events[0].locator == Cell(4, "Avail/ServiceProvider")
        assert "row 3" in events[0].details
        assert "'Foo'" in events[0].details
        avail = result.root.child("Avail")
        assert avail.find("ServiceProvider/DisplayName").text == "Foo"
        # the row still contributes its transaction
        assert len(avail.children_named("Transaction")) == 2

    def test_inconsistent_work_type(self):
        result = ingest_rows(rows(movie_row(), episode_row(1, **{
            "Avail/ALID": "ALID-001"})))
        messages = [e.message for e in result.diagnostics
                    if e.category == Category.INCONSISTENT_REDEFINITION]
        assert any("WorkType" in m for m in messages)
        assert result.root.find("Avail/AvailType").text == "single"

    def test_inconsistent_exception_flag(self):
        result = ingest_rows(rows(
            movie_row(),
            movie_row(**{"Avail/ExceptionFlag": "Yes"}),
        ))
        assert result.diagnostics.count(
            Category.INCONSISTENT_REDEFINITION) == 1
        assert result.root.find("Avail/ExceptionFlag").text == "false"

    def test_inconsistent_asset(self):
        result = ingest_rows(rows(
            episode_row(1),
            episode_row(1, **{"AvailAsset/SeasonContentID": "S2"}),
        ))
        events = [e for e in result.diagnostics
                  if e.category == Category.INCONSISTENT_REDEFINITION]
        assert len(events) == 1
        assert "referenced Asset" in events[0].message
        assert result.diagnostics.count(Category.REDUNDANT_DEFINITION) == 0
        season = result.root.find(
            "Avail/Asset/EpisodeMetadata/SeasonMetadata/SeasonContentID")
        assert season.text == "S1"


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

class TestAssets:
    def test_redundant_asset_reported_as_info(self):
        result = ingest_rows(rows(
            movie_row(), movie_row(**{"AvailTrans/Territory": "CA"})))
        events = [e for e in result.diagnostics
                  if e.category == Category.REDUNDANT_DEFINITION]
        assert len(events) == 1
        assert events[0].severity == Severity.INFO
        assert result.diagnostics.errors() == []

    def test_episodes_are_separate_assets(self):
        result = ingest_rows(rows(episode_row(1), episode_row(2)))
        avail = result.root.child("Avail")
        assert avail.child("AvailType").text == "episode"
        assets = avail.children_named("Asset")
        assert [a.get("contentID") for a in assets] == ["EP-1", "EP-2"]
        meta = assets[0].child("EpisodeMetadata")
        assert meta.find("EpisodeNumber/Number").text == "1"
        assert meta.find("SeasonMetadata/SeasonContentID").text == "S1"
        assert meta.find(
            "SeasonMetadata/SeriesMetadata/SeriesContentID").text == "SR1"

    def test_movie_metadata(self):
        result = ingest_rows(rows(movie_row()))
        asset = result.root.find("Avail/Asset")
        assert asset.get("contentID") == "md:cid:org:studio:movie-1"
        assert asset.child("WorkType").text == "Movie"
        meta = asset.child("Metadata")
        assert meta.child("EditEIDR-URN").text == \
            "urn:eidr:10.5240:1111-2222-3333-4444-5555-C"
        assert meta.child("AltIdentifier") is None
        assert meta.child("RunLength").text == "PT1H45M"
        assert meta.child("ReleaseDate").text == "2019"
        assert meta.find("ReleaseHistory/Date").text == "2019-05-01"

    def test_unsupported_work_type(self):
        result = ingest_rows(rows(movie_row(**{"AvailAsset/WorkType": "Clip"})))
        assert result.diagnostics.count(Category.INVALID_FORMAT) == 1
        asset = result.root.find("Avail/Asset")
        assert asset.child("Metadata") is None

    def test_bundled_alids(self):
        result = ingest_rows(rows(movie_row(**{
            "Avail/BundledALIDs": "ALID-A; ALID-B"})))
        bundled = result.root.find_all("Avail/Asset/BundledAsset/BundledALID")
        assert [b.text for b in bundled] == ["ALID-A", "ALID-B"]

    def test_episode_and_season_sharing_an_id(self):
        result = ingest_rows(rows(
            episode_row(1, **{"AvailAsset/EpisodeContentID": "X"}),
            episode_row(1, **{"AvailAsset/WorkType": "Season",
                              "AvailAsset/EpisodeContentID": "",
                              "AvailAsset/SeasonContentID": "X"})))
        assets = result.root.find("Avail").children_named("Asset")
        assert [a.child("WorkType").text for a in assets] == \
            ["Episode", "Season"]
        assert [a.get("contentID") for a in assets] == ["X", "X"]
        # only the Avail-level AvailType mismatch
        assert result.diagnostics.count(
            Category.INCONSISTENT_REDEFINITION) == 1


class TestRatings:
    def test_same_rating_on_two_rows_emitted_once(self):
        result = ingest_rows(rows(
            movie_row(), movie_row(**{"AvailTrans/Territory": "CA"})))
        ratings = result.root.find_all("Avail/Asset/Metadata/Ratings/Rating")
        assert len(ratings) == 1

    def test_new_rating_from_later_row_merged(self):
        result = ingest_rows(rows(
            movie_row(),
            movie_row(**{"AvailTrans/Territory": "GB",
                         "AvailMetadata/RatingSystem": "BBFC",
                         "AvailMetadata/RatingValue": "12"}),
        ))
        meta = result.root.find("Avail/Asset/Metadata")
        assert len(meta.children_named("Ratings")) == 1
        systems = [r.child("System").text
                   for r in meta.find_all("Ratings/Rating")]
        assert systems == ["MPAA", "BBFC"]
        # Ratings keeps its place ahead of the later metadata fields
        tags = [c.tag for c in meta.children]
        assert tags.index("Ratings") < tags.index("RunLength")


# ---------------------------------------------------------------------------
# Entitlements
# ---------------------------------------------------------------------------

class TestEntitlements:
    def test_deduplicated(self):
        result = ingest_rows(rows(
            movie_row(**{"Avail/UV_ID": "UV-1"}),
            movie_row(**{"Avail/UV_ID": "UV-1", "Avail/DMA_ID": "DMA-9",
                         "AvailTrans/Territory": "CA"}),
        ))
        avail = result.root.child("Avail")
        groups = avail.children_named("SharedEntitlement")
        assert [g.get("ecosystem") for g in groups] == ["UVVU", "DMA"]
        assert [c.text for c in groups[0].children] == ["UV-1"]
        assert [c.text for c in groups[1].children] == ["DMA-9"]

    def test_none_when_empty(self):
        result = ingest_rows(rows(movie_row()))
        assert result.root.find("Avail/SharedEntitlement") is None


# ---------------------------------------------------------------------------
# Whole-pass properties
# ---------------------------------------------------------------------------

class TestDeterminism:
    @pytest.fixture
    def records(self):
        return [
            movie_row(),
            episode_row(1),
            movie_row(**{"AvailTrans/Territory": "CA", "Avail/AvailID": "TX-9"}),
            episode_row(2),
        ]

    def test_same_rows_same_tree(self, records):
        first = ingest_rows(rows(*records))
        second = ingest_rows(rows(*records))
        assert first.root.structure() == second.root.structure()
        assert len(first.diagnostics) == len(second.diagnostics)

    def test_every_leaf_has_provenance(self, records):
        result = ingest_rows(rows(*records))
        for node in result.root.iter():
            if node.text and not node.children:
                assert result.provenance.locate(node) is not None, node.path()

    def test_identifier_containers_have_provenance(self, records):
        result = ingest_rows(rows(*records))
        for avail in result.root.children_named("Avail"):
            alid = result.provenance.lookup(avail)
            assert alid is not None
            assert alid.source == Cell(alid.source.row, "Avail/ALID")
            for asset in avail.children_named("Asset"):
                assert result.provenance.lookup(asset) is not None
        for node in result.root.iter():
            if node is not result.root:
                assert result.provenance.locate(node) is not None, node.path()
