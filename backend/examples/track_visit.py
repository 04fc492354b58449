"""Example client that plays one visit against the analytics API."""
from __future__ import annotations

import argparse
import os
from pathlib import Path

import requests

from backend.careergate.identity import VISITOR_ID_KEY
from backend.careergate.storage import JsonFileStorage

SESSION_HEADER = "X-Session-Id"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate a job board visit")
    parser.add_argument(
        "--api-url",
        default=os.environ.get("GCG_API_URL", "http://127.0.0.1:8000"),
        help="Analytics API base URL (default: %(default)s or GCG_API_URL)",
    )
    parser.add_argument("--job-id", default="job-001", help="Job posting to view and apply for")
    parser.add_argument(
        "--state-file",
        type=Path,
        default=Path.home() / ".gcg_visitor.json",
        help="Where the visitor id is kept between runs (default: %(default)s)",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    client = requests.Session()
    client.headers.update(
        {
            "User-Agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148",
            "Accept-Language": "en-IN,en;q=0.9",
            "X-Screen-Width": "390",
            "X-Screen-Height": "844",
        }
    )
    # Replaying the stored visitor id makes later runs count as a returning visitor.
    state = JsonFileStorage(args.state_file)
    visitor_id = state.get(VISITOR_ID_KEY)
    if visitor_id:
        client.cookies.set(VISITOR_ID_KEY, visitor_id)
    job = {"id": args.job_id, "title": "Heavy Driver", "company": "Al Noor Transport"}

    started = client.post(f"{args.api_url}/track/session/start", timeout=10)
    started.raise_for_status()
    print("Session:", started.json())
    state.set(VISITOR_ID_KEY, started.json()["visitor_id"])
    client.headers[SESSION_HEADER] = started.json()["session_id"]

    calls = [
        ("/track/page-view", {"page_name": "home", "url": f"{args.api_url}/#/"}),
        ("/track/job-view", job),
        ("/track/whatsapp-click", {"job": job, "source": "job_detail"}),
        ("/track/agent", {"interaction_type": "started", "data": {"language": "hi-IN"}}),
        ("/track/session/end", None),
    ]
    for path, body in calls:
        response = client.post(f"{args.api_url}{path}", json=body, timeout=10)
        response.raise_for_status()

    summary = client.get(f"{args.api_url}/stats/summary", timeout=10)
    summary.raise_for_status()
    print("Summary:", summary.json())


if __name__ == "__main__":
    main()
