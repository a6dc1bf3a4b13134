"""Location path building and reconciliation against the platform.

Locations are identified by their full path ("Site RX/Building 7"), never
by bare name: "Floor 1" may legitimately exist under several buildings.
"""

from __future__ import annotations

import logging
from typing import Any

from mydevices.bulk.types import (
    LOCATION_ATTRIBUTES,
    PATH_SEPARATOR,
    HierarchyLevel,
    ImportAction,
    ImportResult,
    ImportSummary,
    LocationNode,
    ParsedRow,
    RecordType,
    RemoteLocation,
)

logger = logging.getLogger(__name__)

# Stands in for a remote id when nothing is created (dry run)
DRY_RUN_LOCATION_ID = -1


class LocationCycleError(RuntimeError):
    """The platform returned locations whose parent links form a cycle."""


MISSING_ID_ERROR = "Create response had no id"


def response_id(response: Any) -> Any:
    """The ``id`` of a create response, or None when the body carries none."""
    if isinstance(response, dict):
        return response.get("id")
    return None


def render_level_name(level: HierarchyLevel, prefix_column_name: bool = True) -> str:
    return f"{level.column_name} {level.value}" if prefix_column_name else level.value


def deepest_location_path(row: ParsedRow, prefix_column_name: bool = True) -> str | None:
    """Path of the last non-blank hierarchy level of a row."""
    if not row.location_hierarchy:
        return None
    return PATH_SEPARATOR.join(
        render_level_name(level, prefix_column_name) for level in row.location_hierarchy
    )


def build_location_paths(
    rows: list[ParsedRow], prefix_column_name: bool = True
) -> dict[str, LocationNode]:
    """Collect every distinct hierarchy path reached by any row.

    A node's ``meta`` comes from the first row for which that path is the
    deepest level; rows passing through it as an interior level never set
    or overwrite it.
    """
    nodes: dict[str, LocationNode] = {}

    for row in rows:
        path = ""
        last = len(row.location_hierarchy) - 1
        for depth, level in enumerate(row.location_hierarchy):
            name = render_level_name(level, prefix_column_name)
            parent_path = path or None
            path = f"{path}{PATH_SEPARATOR}{name}" if path else name

            node = nodes.get(path)
            if node is None:
                node = LocationNode(
                    path=path, name=name, parent_path=parent_path, first_row=row.row_number
                )
                nodes[path] = node
            if depth == last and node.meta is None:
                node.meta = dict(row.location_meta)

    return nodes


def sort_paths_by_depth(nodes: dict[str, LocationNode]) -> list[str]:
    """Paths ordered shallowest first, so parents precede their children."""
    return sorted(nodes, key=lambda path: nodes[path].depth)


def build_remote_path_index(locations: list[RemoteLocation]) -> dict[str, RemoteLocation]:
    """Reconstruct the full path of each remote location from parent links.

    Paths are memoized per id. A parent id that is not in the list makes
    the location a root.

    Raises:
        LocationCycleError: If parent links loop back on themselves
    """
    by_id = {loc.id: loc for loc in locations}
    path_by_id: dict[int, str] = {}

    def resolve(loc: RemoteLocation, visiting: set[int]) -> str:
        cached = path_by_id.get(loc.id)
        if cached is not None:
            return cached
        if loc.id in visiting:
            raise LocationCycleError(
                f"Location parent chain loops back to location {loc.id} ({loc.name})"
            )
        visiting.add(loc.id)

        parent = by_id.get(loc.parent_id) if loc.parent_id else None
        if parent is not None:
            path = f"{resolve(parent, visiting)}{PATH_SEPARATOR}{loc.name}"
        else:
            path = loc.name

        path_by_id[loc.id] = path
        return path

    index: dict[str, RemoteLocation] = {}
    for loc in locations:
        path = resolve(loc, set())
        if path in index:
            logger.warning(
                "Duplicate remote location path %r (ids %s and %s); using the first",
                path,
                index[path].id,
                loc.id,
            )
            continue
        index[path] = loc
    return index


async def fetch_existing_locations(
    api, user_id: str | None = None, page_size: int = 100
) -> list[RemoteLocation]:
    """Page through every location visible to the target user."""
    locations: list[RemoteLocation] = []
    page = 0

    while True:
        response = await api.locations.list(page=page, limit=page_size, user_id=user_id)
        rows = response.get("rows") or []
        locations.extend(RemoteLocation.from_api(r) for r in rows)

        total = response.get("count", 0)
        if len(locations) >= total or len(rows) < page_size:
            break
        page += 1

    logger.debug("Fetched %d existing locations", len(locations))
    return locations


def build_location_payload(
    node: LocationNode,
    parent_id: int | None,
    defaults: dict[str, str],
    user_id: str | None = None,
    company_id: int | None = None,
) -> dict[str, Any]:
    """Create body: defaults first, then the node's CSV values field by field."""
    attributes = {**defaults, **(node.meta or {})}

    payload: dict[str, Any] = {"name": node.name}
    if parent_id:
        payload["parent_id"] = parent_id
    if user_id:
        payload["user_id"] = user_id
    if company_id:
        payload["company_id"] = company_id
    for attr in LOCATION_ATTRIBUTES:
        if attributes.get(attr):
            payload[attr] = attributes[attr]
    return payload


async def resolve_locations(
    api,
    nodes: dict[str, LocationNode],
    existing: dict[str, RemoteLocation],
    summary: ImportSummary,
    defaults: dict[str, str] | None = None,
    user_id: str | None = None,
    company_id: int | None = None,
    dry_run: bool = False,
    lookup_error: str | None = None,
) -> dict[str, int]:
    """Match or create every node, parents first.

    Args:
        api: Object exposing ``locations.create``
        nodes: Local nodes keyed by path
        existing: Remote locations keyed by reconstructed path
        summary: Receives one result per node
        defaults: Operator-supplied fallback attributes
        dry_run: Record decisions without creating anything
        lookup_error: Set when the remote locations could not be listed;
            root nodes then fail instead of risking duplicates

    Returns:
        Mapping of path -> remote location id for every resolved node
    """
    defaults = defaults or {}
    id_by_path: dict[str, int] = {}

    for path in sort_paths_by_depth(nodes):
        node = nodes[path]

        def failed(error: str) -> None:
            summary.record(
                ImportResult(
                    record_type=RecordType.LOCATION,
                    action=ImportAction.FAILED,
                    name=node.name,
                    row=node.first_row,
                    path=path,
                    error=error,
                )
            )

        if path in existing:
            remote = existing[path]
            id_by_path[path] = remote.id
            summary.record(
                ImportResult(
                    record_type=RecordType.LOCATION,
                    action=ImportAction.MATCHED,
                    name=node.name,
                    row=node.first_row,
                    path=path,
                    id=remote.id,
                )
            )
            continue

        parent_id = None
        if node.parent_path:
            parent_id = id_by_path.get(node.parent_path)
            if parent_id is None:
                failed(f"Parent location not found for path: {node.parent_path}")
                continue
        elif lookup_error:
            failed(f"Location lookup failed: {lookup_error}")
            continue

        if dry_run:
            id_by_path[path] = DRY_RUN_LOCATION_ID
            summary.record(
                ImportResult(
                    record_type=RecordType.LOCATION,
                    action=ImportAction.CREATED,
                    name=node.name,
                    row=node.first_row,
                    path=path,
                )
            )
            continue

        payload = build_location_payload(node, parent_id, defaults, user_id, company_id)
        try:
            created = await api.locations.create(payload)
        except Exception as e:
            logger.warning("Failed to create location %s: %s", path, e)
            failed(str(e) or type(e).__name__)
            continue

        location_id = response_id(created)
        if location_id is None:
            logger.warning("Location %s created without an id in the response", path)
            failed(MISSING_ID_ERROR)
            continue

        id_by_path[path] = location_id
        summary.record(
            ImportResult(
                record_type=RecordType.LOCATION,
                action=ImportAction.CREATED,
                name=node.name,
                row=node.first_row,
                path=path,
                id=location_id,
            )
        )

    return id_by_path
