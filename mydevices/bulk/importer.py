"""Bulk import orchestration.

One run reconciles every location first (shallow before deep), then makes
a single pass over the rows for devices. Everything is sequential: the
path -> id map built by the location pass is what the device pass reads.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from mydevices.api.auth import AuthError
from mydevices.bulk.devices import (
    DeviceTypeMismatchError,
    check_device_type_consistency,
    create_devices,
    fetch_template_infos,
    lookup_registry,
)
from mydevices.bulk.locations import (
    build_location_paths,
    build_remote_path_index,
    fetch_existing_locations,
    resolve_locations,
)
from mydevices.bulk.types import ImportSummary, ParsedRow

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class ImportOptions:
    client_id: str
    company_id: Optional[int] = None
    user_id: Optional[str] = None
    dry_run: bool = False
    location_defaults: dict[str, str] = field(default_factory=dict)
    device_type_id: Optional[str] = None
    device_settings: dict[str, str] = field(default_factory=dict)
    prefix_location_name: bool = True
    page_size: int = 100
    on_progress: Optional[ProgressCallback] = None


class BulkImporter:
    """Reconciles parsed CSV rows with the platform.

    ``api`` must expose ``locations``, ``devices``, ``templates`` and
    ``registry`` resources (see ``mydevices.api.resources.MyDevicesApi``).
    """

    def __init__(self, api, options: ImportOptions):
        self.api = api
        self.options = options

    def _progress(self, current: int, total: int, message: str) -> None:
        if self.options.on_progress:
            self.options.on_progress(current, total, message)

    async def run(self, rows: list[ParsedRow]) -> ImportSummary:
        """Execute the import.

        Raises:
            AuthError: No access token could be obtained
            DeviceTypeMismatchError: Rows disagree with the run's device type
                (checked before any network call)
            LocationCycleError: Remote locations form a parent cycle
        """
        opts = self.options
        start_time = time.time()
        summary = ImportSummary()

        if opts.device_type_id:
            mismatches = check_device_type_consistency(rows, opts.device_type_id)
            if mismatches:
                raise DeviceTypeMismatchError(opts.device_type_id, mismatches)

        self._progress(0, len(rows), "Fetching existing locations")
        lookup_error = None
        try:
            remote = await fetch_existing_locations(self.api, opts.user_id, opts.page_size)
        except AuthError:
            raise
        except Exception as e:
            logger.error("Could not list existing locations: %s", e)
            lookup_error = str(e) or type(e).__name__
            remote = []
        existing = build_remote_path_index(remote)

        nodes = build_location_paths(rows, opts.prefix_location_name)
        logger.info("%d distinct location paths, %d already on the platform", len(nodes), len(existing))

        self._progress(0, len(rows), "Resolving locations")
        location_ids = await resolve_locations(
            self.api,
            nodes,
            existing,
            summary,
            defaults=opts.location_defaults,
            user_id=opts.user_id,
            company_id=opts.company_id,
            dry_run=opts.dry_run,
            lookup_error=lookup_error,
        )

        template_ids = [r.device.device_type_id for r in rows if r.device.device_type_id]
        templates = {}
        if template_ids:
            self._progress(0, len(rows), "Fetching device templates")
            templates = await fetch_template_infos(self.api, template_ids)

        self._progress(0, len(rows), "Validating hardware IDs")
        registry = await lookup_registry(
            self.api, [r.device.hardware_id for r in rows if r.device.hardware_id]
        )

        await create_devices(
            self.api,
            rows,
            location_ids,
            summary,
            client_id=opts.client_id,
            templates=templates,
            registry=registry,
            device_settings=opts.device_settings,
            user_id=opts.user_id,
            company_id=opts.company_id,
            prefix_location_name=opts.prefix_location_name,
            dry_run=opts.dry_run,
            on_progress=self._progress,
        )

        logger.info(
            "Import finished in %.1fs: %s",
            time.time() - start_time,
            summary.counts(),
        )
        return summary
