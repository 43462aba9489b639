"""
cli_audit.py
CLI for reading the JSONL audit trail.

Usage:
    python cli_audit.py                              # last 20 events
    python cli_audit.py --type signature_rejected --limit 50
    python cli_audit.py --trace 3f9c0a1b2d4e5f60     # one request end to end
"""

import argparse
import json
import sys

from dotenv import load_dotenv

from audit.events import EVENT_TYPES
from audit.store_jsonl import audit_path, read_events


def build_parser():
    parser = argparse.ArgumentParser(description="Show recent evaluator audit events")
    parser.add_argument("--type", dest="event_type", choices=sorted(EVENT_TYPES), default=None,
                        help="Only events of this type")
    parser.add_argument("--trace", dest="trace_id", default=None, help="Only events for this trace id")
    parser.add_argument("--limit", type=int, default=20, help="Maximum events to print (newest first)")
    return parser


def main(argv=None):
    load_dotenv()
    args = build_parser().parse_args(argv)

    path = audit_path()
    if path is None:
        print("Audit trail disabled (AUDIT_LOG_DIR is empty).", file=sys.stderr)
        return 1

    events = read_events(event_type=args.event_type, limit=None if args.trace_id else args.limit)
    if args.trace_id:
        events = [e for e in events if e.get("trace_id") == args.trace_id][:args.limit]

    for event in events:
        print(json.dumps(event, ensure_ascii=False))
    print(f"\n{len(events)} event(s) from {path}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
