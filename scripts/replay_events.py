from __future__ import annotations

import argparse
import json
import time
from dataclasses import dataclass
from pathlib import Path
from urllib import request


@dataclass
class ReplayContext:
    """Runtime context for live event replay requests."""

    api_base: str
    delay_sec: float


def post_json(url: str, payload: dict) -> dict:
    data = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url=url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with request.urlopen(req, timeout=10) as resp:
        return json.loads(resp.read().decode("utf-8"))


def read_events(events_path: Path) -> list[dict]:
    return [
        json.loads(line)
        for line in events_path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]


def replay_event(context: ReplayContext, index: int, payload: dict) -> None:
    response = post_json(f"{context.api_base}/v1/live/events", payload)
    stats = response["stats"]
    print(
        f"[EVENT {index}] {payload['event_type']} "
        f"severity={payload.get('severity', 'INFO')} "
        f"-> active={stats['active_incidents']} critical={stats['critical_alerts']}"
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Post a JSON-lines recording of live events to the gateway",
    )
    parser.add_argument("--events", required=True, help="Path to a .jsonl file")
    parser.add_argument("--api-base", default="http://127.0.0.1:8000")
    parser.add_argument("--rate", type=float, default=2.0, help="Events per second")
    args = parser.parse_args()

    events_path = Path(args.events)
    if not events_path.exists():
        raise SystemExit(f"events file not found: {events_path}")

    events = read_events(events_path)
    if not events:
        raise SystemExit("no events found")

    context = ReplayContext(
        api_base=args.api_base,
        delay_sec=1.0 / args.rate if args.rate > 0 else 0.5,
    )
    print(f"[INFO] events={len(events)}")

    for idx, payload in enumerate(events):
        replay_event(context=context, index=idx, payload=payload)
        time.sleep(context.delay_sec)

    print("[DONE]")
    print(f"Check snapshot: {context.api_base}/v1/live/snapshot")


if __name__ == "__main__":
    main()
