from .campaign_codes import code_from_column, match_campaign_code, resolve_campaign_code
from .dates import format_date, is_epoch_anchor, normalize_date, parse_datetime, usable_date
from .merged_rows import Reconstruction, reconstruct_rows
from .rows import extract_records
from .status_summary import STATUS_BUCKETS, bucket_for_status, summarize_statuses

__all__ = [
    "code_from_column",
    "match_campaign_code",
    "resolve_campaign_code",
    "format_date",
    "is_epoch_anchor",
    "normalize_date",
    "parse_datetime",
    "usable_date",
    "Reconstruction",
    "reconstruct_rows",
    "extract_records",
    "STATUS_BUCKETS",
    "bucket_for_status",
    "summarize_statuses",
]
