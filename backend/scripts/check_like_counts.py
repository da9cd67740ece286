"""Read-only audit of denormalized post like counters.

Usage:
    python scripts/check_like_counts.py

Environment overrides:
    LIKE_AUDIT_MAX_REPORTED=50

Exits with status 1 when any post's likes_count differs from the number of
like rows referencing it. The script never writes to the database.
"""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Sequence
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from db.session import AsyncSessionMaker  # noqa: E402
from services.like_ledger import (  # noqa: E402
    LikeCountMismatch,
    find_like_count_mismatches,
)

MAX_REPORTED_ENV = "LIKE_AUDIT_MAX_REPORTED"
DEFAULT_MAX_REPORTED = 50


def _parse_positive_int(raw_value: str | None, *, default: int, label: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if parsed <= 0:
        raise ValueError(f"{label} must be positive")
    return parsed


def format_report(mismatches: Sequence[LikeCountMismatch], *, max_reported: int) -> list[str]:
    if not mismatches:
        return ["Like counters consistent: every post matches its like rows."]

    lines = [
        f"post {mismatch.post_id}: likes_count={mismatch.likes_count} "
        f"like_rows={mismatch.like_rows}"
        for mismatch in mismatches[:max_reported]
    ]
    hidden = len(mismatches) - max_reported
    if hidden > 0:
        lines.append(f"... and {hidden} more")
    lines.append(f"Like counter drift found on {len(mismatches)} post(s).")
    return lines


async def run(
    session_maker: async_sessionmaker[AsyncSession] = AsyncSessionMaker,
) -> list[LikeCountMismatch]:
    async with session_maker() as session:
        return await find_like_count_mismatches(session)


def main() -> int:
    max_reported = _parse_positive_int(
        os.getenv(MAX_REPORTED_ENV),
        default=DEFAULT_MAX_REPORTED,
        label=MAX_REPORTED_ENV,
    )
    mismatches = asyncio.run(run())
    for line in format_report(mismatches, max_reported=max_reported):
        print(line)
    return 1 if mismatches else 0


if __name__ == "__main__":
    raise SystemExit(main())
