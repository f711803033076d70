from __future__ import annotations

import argparse
import json
from typing import Any, Sequence

import httpx


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ask a running backend for the safest/fastest walking routes between two points."
    )
    parser.add_argument("--origin", required=True, help="lat,lon or an address")
    parser.add_argument("--destination", required=True, help="lat,lon or an address")
    parser.add_argument("--hour", type=int, default=None)
    parser.add_argument("--max-alternatives", type=int, default=5)
    parser.add_argument("--backend-url", default="http://localhost:8000")
    parser.add_argument("--timeout-s", type=float, default=90.0)
    return parser


def parse_lat_lon(raw: str) -> dict[str, float]:
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2:
        raise ValueError(f"expected 'lat,lon', got {raw!r}")
    return {"lat": float(parts[0]), "lon": float(parts[1])}


def parse_place(raw: str) -> dict[str, float] | str:
    try:
        return parse_lat_lon(raw)
    except ValueError:
        return raw.strip()


def build_payload(args: argparse.Namespace) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "origin": parse_place(args.origin),
        "destination": parse_place(args.destination),
        "max_alternatives": int(args.max_alternatives),
    }
    if args.hour is not None:
        payload["hour"] = int(args.hour)
    return payload


def summarize(response: dict[str, Any]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for route in response.get("routes", []):
        metrics = route.get("metrics", {})
        rows.append(
            {
                "label": route.get("label"),
                "id": route.get("id"),
                "distance_km": round(float(route.get("distance_m", 0.0)) / 1000.0, 2),
                "duration_min": round(float(route.get("duration_s", 0.0)) / 60.0),
                "safety_score": metrics.get("safety_score"),
                "rank_score": route.get("rank_score"),
                "safety_label": route.get("safety_label"),
            }
        )
    return rows


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    payload = build_payload(args)
    url = f"{args.backend_url.rstrip('/')}/routes/safety"

    with httpx.Client(timeout=args.timeout_s) as client:
        resp = client.post(url, json=payload)
    if resp.status_code != 200:
        print(json.dumps({"status": resp.status_code, "detail": resp.text}, indent=2))
        return 1

    print(json.dumps(summarize(resp.json()), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
