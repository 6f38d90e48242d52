from __future__ import annotations
import argparse, dataclasses, sys
from typing import List, Optional

import httpx

DEFAULT_URL = "http://127.0.0.1:9001"

def _read_payload(args) -> str:
    if args.file:
        with open(args.file, "r", encoding="utf-8") as f:
            return f.read()
    return args.payload

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="lrt", description="Local Lambda runtime emulator CLI")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_serve = sub.add_parser("serve", help="Run the runtime API emulator")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)
    p_serve.add_argument("--debug", action="store_true")

    p_invoke = sub.add_parser("invoke", help="Queue a test event on a running emulator")
    src = p_invoke.add_mutually_exclusive_group(required=True)
    src.add_argument("--payload")
    src.add_argument("--file")
    p_invoke.add_argument("--url", default=DEFAULT_URL)

    p_events = sub.add_parser("events", help="Print pending / active / completed events")
    p_events.add_argument("--url", default=DEFAULT_URL)

    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.cmd == "serve":
        from app.api.server import build_server
        from app.config import RuntimeConfig
        from app.logging_config import configure_logging

        cfg = RuntimeConfig.from_env()
        overrides = {k: v for k, v in (("host", args.host), ("port", args.port)) if v is not None}
        if args.debug:
            overrides["debug"] = True
        cfg = dataclasses.replace(cfg, **overrides)
        configure_logging(debug=cfg.debug, json_logs=cfg.json_logs)
        build_server(cfg).run()
        return 0

    try:
        if args.cmd == "invoke":
            r = httpx.post(f"{args.url}/runtime/test-event", content=_read_payload(args).encode("utf-8"))
            r.raise_for_status()
            print(f"Queued {r.json()['awsRequestId']}")
            return 0

        # events
        r = httpx.get(f"{args.url}/runtime/events")
        r.raise_for_status()
        snap = r.json()
        active = snap.get("active")
        print(f"Pending   : {len(snap['pending'])}")
        print(f"Active    : {active['awsRequestId'] + ' (' + active['status'] + ')' if active else '-'}")
        print(f"Completed : {len(snap['completed'])}")
        for rec in snap["completed"]:
            print(f"  {rec['awsRequestId']}  {rec['status']:<9}  {rec['lastUpdated']}")
        return 0
    except httpx.HTTPError as e:
        print(f"Request failed: {e}", file=sys.stderr)
        return 2

if __name__ == "__main__":
    sys.exit(main())
