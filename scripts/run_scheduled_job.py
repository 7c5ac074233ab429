from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


ROOT = _repo_root()
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from apps.api.app.config import SHEET_SYNC_STRATEGY, SHEETS_EXCLUDED  # noqa: E402
from apps.api.app.db import SessionLocal, init_db  # noqa: E402
from apps.api.app.sheet_source import build_default_source, load_sheet_records  # noqa: E402
from apps.api.app.sheet_sync import SheetSyncService, build_strategy  # noqa: E402


def _run_job(args: argparse.Namespace) -> dict[str, object]:
    init_db()

    if args.job == "sheet_sync":
        source = build_default_source()
        service = SheetSyncService(
            load_records=lambda: load_sheet_records(source, SHEETS_EXCLUDED),
            session_factory=SessionLocal,
            strategy=build_strategy(args.strategy or SHEET_SYNC_STRATEGY),
        )
        result = service.run_once(trigger="cli")
        result.pop("data", None)
        return result

    return {"ok": False, "error": f"Unsupported job: {args.job}"}


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run one scheduled backend job once (for external cron usage).",
    )
    parser.add_argument("--job", required=True, choices=("sheet_sync",), help="Job to execute.")
    parser.add_argument(
        "--strategy",
        choices=("replace", "mirror"),
        default=None,
        help="Reconcile strategy override (default: SHEET_SYNC_STRATEGY).",
    )

    args = parser.parse_args()
    try:
        result = _run_job(args)
    except Exception as exc:  # pragma: no cover
        result = {"ok": False, "error": str(exc), "job": str(args.job)}
    print(json.dumps(result, ensure_ascii=False, default=str))
    return 0 if bool(result.get("ok", True)) else 1


if __name__ == "__main__":
    raise SystemExit(main())
