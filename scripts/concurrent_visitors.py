#!/usr/bin/env python3
"""
Concurrent visitor numbering check.

Creates many sessions at once against a running server and verifies that:
- No two sessions received the same visitor number
- Every answer recorded for a session carries the session's number
- Sessions created while numbering was unavailable are reported

Gaps in the numbering are reported but do not fail the run.

Usage:
    python scripts/concurrent_visitors.py [--url URL] [--visitors N]

Options:
    --url URL       API base URL (default: http://127.0.0.1:8000)
    --visitors N    Number of concurrent visitors (default: 10)
"""

import argparse
import asyncio
import statistics
import sys
import time
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional

import httpx


@dataclass
class VisitorResult:
    """Outcome of one simulated visitor."""

    index: int
    duration_ms: float
    session_id: Optional[str] = None
    visitor_number: Optional[int] = None
    response_visitor_number: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def simulate_visitor(client: httpx.AsyncClient, index: int) -> VisitorResult:
    """Create a session, then record one text answer on it."""
    start = time.perf_counter()
    try:
        created = await client.post("/sessions", json={})
        created.raise_for_status()
        session = created.json()

        answer = await client.post(
            f"/sessions/{session['id']}/responses",
            json={
                "question_id": "concurrency_check",
                "response_type": "text",
                "response_data": {"value": f"visitor {index}"},
            },
        )
        answer.raise_for_status()

        return VisitorResult(
            index=index,
            duration_ms=(time.perf_counter() - start) * 1000,
            session_id=session["id"],
            visitor_number=session["visitor_number"],
            response_visitor_number=answer.json()["visitor_number"],
        )
    except httpx.HTTPError as e:
        return VisitorResult(
            index=index,
            duration_ms=(time.perf_counter() - start) * 1000,
            error=f"{type(e).__name__}: {e}",
        )


async def run(url: str, visitors: int) -> List[VisitorResult]:
    async with httpx.AsyncClient(base_url=url, timeout=30.0) as client:
        return await asyncio.gather(
            *(simulate_visitor(client, i) for i in range(visitors))
        )


def report(results: List[VisitorResult]) -> bool:
    """Print a summary and return True if no invariant was violated."""
    succeeded = [r for r in results if r.ok]
    failed = [r for r in results if not r.ok]
    numbered = [r for r in succeeded if r.visitor_number is not None]
    degraded = [r for r in succeeded if r.visitor_number is None]

    numbers = sorted(r.visitor_number for r in numbered)
    duplicates = sorted(n for n, count in Counter(numbers).items() if count > 1)
    mismatched = [r for r in succeeded if r.response_visitor_number != r.visitor_number]
    gaps = []
    if numbers:
        gaps = sorted(set(range(numbers[0], numbers[-1] + 1)) - set(numbers))

    print("\n" + "=" * 60)
    print("Concurrent Visitor Numbering")
    print("=" * 60)
    print(f"Visitors:           {len(results)}")
    print(f"Succeeded:          {len(succeeded)}")
    print(f"Failed:             {len(failed)}")
    print(f"Degraded (no number): {len(degraded)}")
    if numbers:
        print(f"Number range:       {numbers[0]}..{numbers[-1]}")
    if succeeded:
        durations = [r.duration_ms for r in succeeded]
        print(f"Median latency:     {statistics.median(durations):.1f}ms")
        print(f"Max latency:        {max(durations):.1f}ms")
    print(f"Gaps:               {gaps or 'none'}")
    print(f"Duplicates:         {duplicates or 'none'}")
    print(f"Snapshot mismatches: {len(mismatched)}")

    for r in failed:
        print(f"  visitor {r.index}: {r.error}")

    return not duplicates and not mismatched and not failed


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Check visitor numbering under concurrent session creation"
    )
    parser.add_argument(
        "--url",
        default="http://127.0.0.1:8000",
        help="API base URL (default: http://127.0.0.1:8000)",
    )
    parser.add_argument(
        "--visitors",
        type=int,
        default=10,
        help="Number of concurrent visitors (default: 10)",
    )
    args = parser.parse_args()

    results = asyncio.run(run(args.url, args.visitors))

    if report(results):
        print("\nPASSED: all visitor numbers unique")
        return 0
    print("\nFAILED: see report above")
    return 1


if __name__ == "__main__":
    sys.exit(main())
