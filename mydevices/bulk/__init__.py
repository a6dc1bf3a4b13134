"""Bulk CSV import of locations and devices.

Parses a provisioning sheet, maps its columns onto a location hierarchy
and device fields, and reconciles the result with the platform.
"""

from mydevices.bulk.importer import BulkImporter, ImportOptions
from mydevices.bulk.types import ImportResult, ImportSummary, ParsedRow

__all__ = ["BulkImporter", "ImportOptions", "ImportResult", "ImportSummary", "ParsedRow"]
