from __future__ import annotations

import re

from .rows import cell_text


# "ITL - 7781", "itl7781", "ITL#7781" all resolve to "7781".
STRICT_CODE_PATTERN = re.compile(r"ITL[\s\-_:#]*(\d{4})", re.IGNORECASE)
LOOSE_CODE_PATTERN = re.compile(r"ITL[\s\-_:#]*(\d+)", re.IGNORECASE)
# A dedicated code column may hold only the number.
BARE_CODE_PATTERN = re.compile(r"#?\s*(\d+)")


def match_campaign_code(text: object, *, strict: bool = True) -> str | None:
    pattern = STRICT_CODE_PATTERN if strict else LOOSE_CODE_PATTERN
    match = pattern.search(cell_text(text))
    return match.group(1) if match else None


def code_from_column(text: object) -> str | None:
    """Code from the dedicated ITL column: prefixed, or the bare number."""
    code = match_campaign_code(text, strict=False)
    if code:
        return code
    match = BARE_CODE_PATTERN.fullmatch(cell_text(text))
    return match.group(1) if match else None


def resolve_campaign_code(*candidates: object, strict: bool = True) -> str | None:
    """Return the code from the first candidate that carries one.

    Candidates are tried in order, so callers pass the dedicated code column
    before free-text name columns. ``None`` means unresolved.
    """
    for candidate in candidates:
        code = match_campaign_code(candidate, strict=strict)
        if code:
            return code
    return None
