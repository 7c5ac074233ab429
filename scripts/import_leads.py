from __future__ import annotations

import argparse
import json
import mimetypes
import sys
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


ROOT = _repo_root()
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from apps.api.app.config import LEAD_UPLOAD_MODE  # noqa: E402
from apps.api.app.db import SessionLocal, init_db  # noqa: E402
from apps.api.app.lead_upload import (  # noqa: E402
    UploadedFile,
    UploadProcessingError,
    UploadRejected,
    run_lead_upload,
)


def _load_files(paths: list[str]) -> list[UploadedFile]:
    files = []
    for raw in paths:
        path = Path(raw).expanduser()
        files.append(
            UploadedFile(
                filename=path.name,
                content=path.read_bytes(),
                content_type=mimetypes.guess_type(path.name)[0] or "",
            )
        )
    return files


def main() -> int:
    parser = argparse.ArgumentParser(description="Import lead report spreadsheets into lead_reports.")
    parser.add_argument("files", nargs="+", help="Excel (.xlsx/.xls) or CSV lead reports.")
    parser.add_argument(
        "--mode",
        choices=("replace", "merge"),
        default=LEAD_UPLOAD_MODE,
        help="replace: overwrite per (code, date); merge: union with stored lead ids.",
    )
    args = parser.parse_args()

    init_db()

    db = SessionLocal()
    try:
        result = run_lead_upload(db, _load_files(args.files), mode=args.mode)
    except UploadRejected as exc:
        result = {"ok": False, "error": str(exc)}
    except UploadProcessingError as exc:
        result = {"ok": False, "error": str(exc), "stats": exc.stats.as_dict()}
    finally:
        db.close()

    print(json.dumps(result, ensure_ascii=False))
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
