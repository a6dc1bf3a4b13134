"""Tests for location path building and reconciliation."""

from __future__ import annotations

import pytest

from mydevices.bulk.locations import (
    DRY_RUN_LOCATION_ID,
    LocationCycleError,
    build_location_paths,
    build_location_payload,
    build_remote_path_index,
    deepest_location_path,
    fetch_existing_locations,
    resolve_locations,
    sort_paths_by_depth,
)
from mydevices.bulk.types import (
    HierarchyLevel,
    ImportAction,
    ImportSummary,
    LocationNode,
    ParsedRow,
    RemoteLocation,
)


def make_row(row_number, *levels, meta=None):
    columns = ["Site", "Building", "Floor", "Room"]
    return ParsedRow(
        row_number=row_number,
        location_hierarchy=tuple(HierarchyLevel(c, v) for c, v in zip(columns, levels)),
        location_meta=meta or {},
    )


class TestPaths:
    def test_deepest_location_path(self):
        row = make_row(2, "RX", "7")

        assert deepest_location_path(row) == "Site RX/Building 7"
        assert deepest_location_path(row, prefix_column_name=False) == "RX/7"
        assert deepest_location_path(make_row(3)) is None

    def test_distinct_paths_from_rows(self):
        rows = [make_row(2, "RX", "7"), make_row(3, "RX", "8"), make_row(4, "RX", "7")]

        nodes = build_location_paths(rows)

        assert set(nodes) == {"Site RX", "Site RX/Building 7", "Site RX/Building 8"}
        node = nodes["Site RX/Building 8"]
        assert node.name == "Building 8"
        assert node.parent_path == "Site RX"
        assert node.first_row == 3
        assert nodes["Site RX"].parent_path is None

    def test_same_name_under_different_parents(self):
        rows = [make_row(2, "RX", "7", "1"), make_row(3, "RX", "8", "1")]

        nodes = build_location_paths(rows)

        assert "Site RX/Building 7/Floor 1" in nodes
        assert "Site RX/Building 8/Floor 1" in nodes

    def test_meta_from_first_row_at_deepest_level(self):
        rows = [
            make_row(2, "RX", "7", meta={"city": "Paris"}),
            make_row(3, "RX", meta={"city": "Lyon"}),
            make_row(4, "RX", meta={"city": "Nice"}),
        ]

        nodes = build_location_paths(rows)

        # Row 2 passes through "Site RX" without setting its meta
        assert nodes["Site RX"].meta == {"city": "Lyon"}
        assert nodes["Site RX/Building 7"].meta == {"city": "Paris"}

    def test_interior_only_node_has_no_meta(self):
        nodes = build_location_paths([make_row(2, "RX", "7", meta={"city": "Paris"})])

        assert nodes["Site RX"].meta is None

    def test_sort_by_depth(self):
        nodes = build_location_paths([make_row(2, "A", "1", "x"), make_row(3, "B")])

        depths = [nodes[p].depth for p in sort_paths_by_depth(nodes)]

        assert depths == sorted(depths)
        assert sort_paths_by_depth(nodes)[-1] == "Site A/Building 1/Floor x"


class TestRemotePathIndex:
    def test_reconstructs_full_paths(self):
        remote = [
            RemoteLocation(id=3, name="Floor 1", parent_id=2),
            RemoteLocation(id=1, name="Site RX"),
            RemoteLocation(id=2, name="Building 7", parent_id=1),
        ]

        index = build_remote_path_index(remote)

        assert {path: loc.id for path, loc in index.items()} == {
            "Site RX": 1,
            "Site RX/Building 7": 2,
            "Site RX/Building 7/Floor 1": 3,
        }

    def test_unknown_parent_makes_a_root(self):
        index = build_remote_path_index([RemoteLocation(id=5, name="Orphan", parent_id=999)])

        assert list(index) == ["Orphan"]

    def test_duplicate_path_keeps_first(self):
        remote = [RemoteLocation(id=1, name="Site RX"), RemoteLocation(id=2, name="Site RX")]

        index = build_remote_path_index(remote)

        assert index["Site RX"].id == 1

    def test_cycle_is_fatal(self):
        remote = [
            RemoteLocation(id=1, name="A", parent_id=2),
            RemoteLocation(id=2, name="B", parent_id=1),
        ]

        with pytest.raises(LocationCycleError):
            build_remote_path_index(remote)

    def test_self_parent_is_a_cycle(self):
        with pytest.raises(LocationCycleError):
            build_remote_path_index([RemoteLocation(id=1, name="A", parent_id=1)])


def test_build_location_payload():
    node = LocationNode(
        path="Site RX/Building 7",
        name="Building 7",
        parent_path="Site RX",
        meta={"city": "Paris"},
    )

    payload = build_location_payload(
        node, 10, {"city": "Lyon", "country": "FR", "zip": "75001"}, user_id="u-1", company_id=3
    )

    assert payload == {
        "name": "Building 7",
        "parent_id": 10,
        "user_id": "u-1",
        "company_id": 3,
        "city": "Paris",
        "country": "FR",
        "zip": "75001",
    }


@pytest.mark.asyncio
async def test_fetch_existing_locations_pages(platform):
    for index in range(5):
        platform.add_location(f"Site {index}")

    locations = await fetch_existing_locations(platform, user_id="u-1", page_size=2)

    assert [loc.name for loc in locations] == [f"Site {i}" for i in range(5)]
    assert [c[1] for c in platform.calls_to("locations.list")] == [0, 1, 2]
    assert all(c[2] == "u-1" for c in platform.calls_to("locations.list"))


class TestResolveLocations:
    @pytest.mark.asyncio
    async def test_creates_parents_first(self, platform):
        nodes = build_location_paths([make_row(2, "RX", "7"), make_row(3, "RX", "8")])
        summary = ImportSummary()

        ids = await resolve_locations(platform, nodes, {}, summary, company_id=1)

        created = [c[1] for c in platform.calls_to("locations.create")]
        assert [p["name"] for p in created] == ["Site RX", "Building 7", "Building 8"]
        assert "parent_id" not in created[0]
        assert created[1]["parent_id"] == ids["Site RX"]
        assert summary.locations_created == 3

    @pytest.mark.asyncio
    async def test_matches_existing_paths(self, platform):
        site = platform.add_location("Site RX")
        platform.add_location("Building 7", parent_id=site)
        existing = build_remote_path_index(
            [RemoteLocation.from_api(r) for r in platform.stored_locations]
        )
        nodes = build_location_paths([make_row(2, "RX", "7"), make_row(3, "RX", "8")])
        summary = ImportSummary()

        ids = await resolve_locations(platform, nodes, existing, summary)

        assert summary.locations_matched == 2
        assert summary.locations_created == 1
        assert platform.calls_to("locations.create")[0][1]["parent_id"] == site
        assert ids["Site RX"] == site

    @pytest.mark.asyncio
    async def test_same_name_elsewhere_is_not_a_match(self, platform):
        other = platform.add_location("Site Other")
        platform.add_location("Building 7", parent_id=other)
        existing = build_remote_path_index(
            [RemoteLocation.from_api(r) for r in platform.stored_locations]
        )
        nodes = build_location_paths([make_row(2, "RX", "7")])
        summary = ImportSummary()

        await resolve_locations(platform, nodes, existing, summary)

        assert summary.locations_created == 2
        assert summary.locations_matched == 0

    @pytest.mark.asyncio
    async def test_failed_parent_fails_descendants(self, platform):
        platform.fail_location_names = {"Building 7"}
        nodes = build_location_paths([make_row(2, "RX", "7", "1", "101"), make_row(3, "RX", "8")])
        summary = ImportSummary()

        ids = await resolve_locations(platform, nodes, {}, summary)

        failed = {r.path: r.error for r in summary.failures}
        assert failed["Site RX/Building 7"] == "Cannot create Building 7"
        assert failed["Site RX/Building 7/Floor 1"] == (
            "Parent location not found for path: Site RX/Building 7"
        )
        assert failed["Site RX/Building 7/Floor 1/Room 101"] == (
            "Parent location not found for path: Site RX/Building 7/Floor 1"
        )
        assert "Site RX/Building 8" in ids
        assert summary.locations_created == 2
        assert summary.locations_failed == 3

    @pytest.mark.asyncio
    async def test_dry_run_creates_nothing(self, platform):
        nodes = build_location_paths([make_row(2, "RX", "7")])
        summary = ImportSummary()

        ids = await resolve_locations(platform, nodes, {}, summary, dry_run=True)

        assert platform.calls_to("locations.create") == []
        assert ids == {"Site RX": DRY_RUN_LOCATION_ID, "Site RX/Building 7": DRY_RUN_LOCATION_ID}
        assert summary.locations_created == 2
        assert all(r.id is None for r in summary.results)

    @pytest.mark.asyncio
    async def test_lookup_error_fails_roots(self, platform):
        nodes = build_location_paths([make_row(2, "RX", "7")])
        summary = ImportSummary()

        ids = await resolve_locations(platform, nodes, {}, summary, lookup_error="API error: 500")

        assert ids == {}
        assert [(r.path, r.action) for r in summary.results] == [
            ("Site RX", ImportAction.FAILED),
            ("Site RX/Building 7", ImportAction.FAILED),
        ]
        assert summary.results[0].error == "Location lookup failed: API error: 500"
        assert platform.calls_to("locations.create") == []

    @pytest.mark.asyncio
    async def test_defaults_and_meta_in_payload(self, platform):
        nodes = build_location_paths([make_row(2, "RX", meta={"city": "Paris"})])

        await resolve_locations(
            platform,
            nodes,
            {},
            ImportSummary(),
            defaults={"city": "Lyon", "industry": "Retail"},
            user_id="u-1",
            company_id=7,
        )

        (call,) = platform.calls_to("locations.create")
        assert call[1] == {
            "name": "Site RX",
            "user_id": "u-1",
            "company_id": 7,
            "city": "Paris",
            "industry": "Retail",
        }


@pytest.mark.asyncio
async def test_create_response_without_id_fails_that_node(platform):
    platform.bodyless_location_names = {"Building 7"}
    nodes = build_location_paths(
        [make_row(2, "RX", "7", "1"), make_row(3, "RX", "8")]
    )
    summary = ImportSummary()

    ids = await resolve_locations(platform, nodes, {}, summary)

    failed = {r.path: r.error for r in summary.failures}
    assert failed == {
        "Site RX/Building 7": "Create response had no id",
        "Site RX/Building 7/Floor 1": "Parent location not found for path: Site RX/Building 7",
    }
    assert set(ids) == {"Site RX", "Site RX/Building 8"}
