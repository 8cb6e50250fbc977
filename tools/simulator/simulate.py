#!/usr/bin/env python3
"""Lean Stats page-view simulator.

Generates realistic page-view hit traffic for testing the collector.

Usage:
    # 5 visitors browsing for 1 minute
    python -m tools.simulator.simulate --server http://localhost:8000 --visitors 5 --duration 60

    # Stress test: 50 visitors, fast browsing
    python -m tools.simulator.simulate --server http://localhost:8000 --visitors 50 --views-per-minute 60

    # Read pipeline counters afterwards (admin token required)
    python -m tools.simulator.simulate --admin-token secret-token
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import time
from dataclasses import dataclass, field

import httpx

BUCKET_SECONDS = 300

PAGES = [
    "/",
    "/blog/",
    "/blog/hello-world/",
    "/blog/privacy-first-analytics/?utm_source=newsletter&utm_medium=email",
    "/about/",
    "/contact/?ref=footer",
    "/shop/?page=2",
]
REFERRERS = [
    None,
    None,
    "https://www.google.com/search?q=lean+stats",
    "https://news.ycombinator.com/item?id=1",
    "duckduckgo.com",
    "https://mastodon.social/@someone",
]
DEVICES = {"desktop": 55, "mobile": 35, "tablet": 8, "bot": 2}


@dataclass
class SimVisitor:
    ip: str
    device_class: str
    views_sent: int = 0
    tracked: int = 0
    errors: int = 0
    status_counts: dict[int, int] = field(default_factory=dict)


def make_hit_payload(visitor: SimVisitor) -> dict:
    """Create a single page-view payload."""
    now = int(time.time())
    payload = {
        "page_path": random.choice(PAGES),
        "device_class": visitor.device_class,
        "timestamp_bucket": now - now % BUCKET_SECONDS,
    }
    referrer = random.choice(REFERRERS)
    if referrer is not None:
        payload["referrer_domain"] = referrer
    if random.random() < 0.3:
        payload["post_id"] = random.randint(1, 200)
    return payload


async def run_visitor(
    client: httpx.AsyncClient,
    visitor: SimVisitor,
    server_url: str,
    views_per_minute: float,
    duration_seconds: float,
    dnt_ratio: float,
) -> None:
    """Simulate a single visitor browsing pages."""
    interval = 60.0 / views_per_minute
    end_time = time.monotonic() + duration_seconds

    while time.monotonic() < end_time:
        headers = {"content-type": "application/json", "X-Forwarded-For": visitor.ip}
        if random.random() < dnt_ratio:
            headers["DNT"] = "1"

        try:
            resp = await client.post(
                f"{server_url}/api/v1/hits",
                content=json.dumps(make_hit_payload(visitor)),
                headers=headers,
            )
            visitor.views_sent += 1
            visitor.status_counts[resp.status_code] = visitor.status_counts.get(resp.status_code, 0) + 1
            if resp.status_code == 201:
                visitor.tracked += 1
            elif resp.status_code != 204:
                visitor.errors += 1
        except httpx.RequestError:
            visitor.errors += 1

        await asyncio.sleep(random.uniform(0.5, 1.5) * interval)


async def print_server_stats(client: httpx.AsyncClient, server_url: str, token: str) -> None:
    """Fetch a nonce, then print the collector's pipeline counters."""
    auth = {"Authorization": f"Bearer {token}"}
    try:
        resp = await client.get(f"{server_url}/api/v1/admin/nonce", headers=auth)
        resp.raise_for_status()
        resp = await client.get(f"{server_url}/api/v1/admin/stats",
                                headers={**auth, "X-LS-Nonce": resp.json()["nonce"]})
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        print(f"\nCould not read server stats: {exc}")
        return

    stats = resp.json()
    print("\nServer stats:")
    for key in ("hits_received", "hits_tracked", "hits_skipped", "hits_invalid",
                "hits_deduplicated", "hits_rate_limited", "storage_errors"):
        print(f"  {key}: {stats[key]}")


async def run_simulation(args: argparse.Namespace) -> None:
    """Run the full simulation."""
    visitors = [
        SimVisitor(
            ip=f"198.51.100.{i % 254 + 1}",
            device_class=random.choices(list(DEVICES), weights=list(DEVICES.values()))[0],
        )
        for i in range(args.visitors)
    ]

    print(f"Starting simulation: {args.visitors} visitors, {args.views_per_minute} views/min each")
    print(f"  Duration: {args.duration}s")
    print(f"  Server: {args.server}")
    print(f"  DNT ratio: {args.dnt_ratio}")
    print()

    start = time.monotonic()

    async with httpx.AsyncClient(timeout=10.0) as client:
        tasks = [
            run_visitor(client, visitor, args.server, args.views_per_minute,
                        args.duration, args.dnt_ratio)
            for visitor in visitors
        ]
        await asyncio.gather(*tasks)

        elapsed = time.monotonic() - start
        total_sent = sum(v.views_sent for v in visitors)
        total_tracked = sum(v.tracked for v in visitors)
        total_errors = sum(v.errors for v in visitors)
        statuses: dict[int, int] = {}
        for visitor in visitors:
            for status, count in visitor.status_counts.items():
                statuses[status] = statuses.get(status, 0) + count

        print(f"\nSimulation complete in {elapsed:.1f}s")
        print(f"  Views sent: {total_sent}")
        print(f"  Tracked: {total_tracked}")
        print(f"  Errors: {total_errors}")
        print(f"  Status codes: {dict(sorted(statuses.items()))}")
        print(f"  Throughput: {total_sent / elapsed:.1f} views/sec")

        if args.admin_token:
            await print_server_stats(client, args.server, args.admin_token)


def main():
    parser = argparse.ArgumentParser(description="Lean Stats page-view simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--visitors", type=int, default=5, help="Number of simulated visitors")
    parser.add_argument("--duration", type=int, default=60, help="Simulation duration in seconds")
    parser.add_argument("--views-per-minute", type=float, default=10,
                        help="Page views per minute per visitor")
    parser.add_argument("--dnt-ratio", type=float, default=0.1,
                        help="Share of requests sent with DNT: 1 (default: 0.1)")
    parser.add_argument("--admin-token", default=None,
                        help="Bearer token used to read pipeline stats at the end")

    args = parser.parse_args()
    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
