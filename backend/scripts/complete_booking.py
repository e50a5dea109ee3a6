#!/usr/bin/env python3
import argparse
import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.services.booking_lifecycle import booking_lifecycle  # noqa: E402
from app.services.errors import BookingError  # noqa: E402


async def _complete_all(booking_ids: list[str]) -> list[dict]:
    results = []
    for booking_id in booking_ids:
        try:
            booking = await booking_lifecycle.mark_completed(booking_id)
        except BookingError as exc:
            results.append({"id": booking_id, "ok": False, "error": f"{type(exc).__name__}: {exc}"})
            continue
        results.append({"id": booking.id, "ok": True, "status": booking.status})
    return results


def main() -> int:
    parser = argparse.ArgumentParser(description="Mark bookings as Completed once the service was delivered.")
    parser.add_argument("booking_ids", nargs="+", help="Booking ids to complete.")
    parser.add_argument("--json", action="store_true", help="Print results as JSON.")
    args = parser.parse_args()

    results = asyncio.run(_complete_all(args.booking_ids))
    if args.json:
        print(json.dumps(results, indent=2))
    else:
        for row in results:
            if row["ok"]:
                print(f"  - {row['id']}: {row['status']}")
            else:
                print(f"  - {row['id']}: FAILED ({row['error']})")
    return 0 if all(row["ok"] for row in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
