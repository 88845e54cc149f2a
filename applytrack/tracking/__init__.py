"""Record matching, merging and bulk import."""
from .matcher import STATUS_PRIORITY, RecordMatcher, should_update_status, status_priority
from .record_service import JobRecordService, empty_import_stats
from .spreadsheet import load_spreadsheet, map_row, parse_excel_date

__all__ = [
    "STATUS_PRIORITY",
    "RecordMatcher",
    "should_update_status",
    "status_priority",
    "JobRecordService",
    "empty_import_stats",
    "load_spreadsheet",
    "map_row",
    "parse_excel_date",
]
