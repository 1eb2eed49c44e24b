"""
Forensic Reporter CLI
=====================

Tool for forensic inspection of a narrative store file.
Reads the store directly; never writes it.

COMMANDS:
- verify:      Check store invariants (exit 1 on any violation)
- log:         Dump the event log in fold order
- state:       Dump the projection at a (message, swipe)
- milestones:  List milestones for one character pair

USAGE:
    python -m chronicle.forensic STORE.json [COMMAND] [ARGS]
"""
import argparse
import logging
import os
import sys
from typing import List, Optional

from .contracts.events import event_kind
from .domain.serialization import dumps, projection_to_dict
from .engine import NarrativeStore
from .temporal.event_log import fold_order
from .temporal.swipes import canonical_swipe, parse_chat


def open_store(path: str) -> Optional[NarrativeStore]:
    if not os.path.exists(path):
        print(f"[!] No store at {path}")
        return None
    try:
        return NarrativeStore.open(path)
    except ValueError as exc:
        print(f"[FAIL] Cannot read store: {exc}")
        return None


def cmd_verify(store: NarrativeStore, args) -> int:
    """Check invariants."""
    print(f"[*] Verifying store at: {args.store}")
    print(
        f"    {len(store.log.state_events)} state events, "
        f"{len(store.log.narrative_events)} narrative events, "
        f"{len(store.snapshots)} snapshots"
    )
    errors = store.verify(parse_chat(args.chat))
    for error in errors:
        context = ", ".join(f"{k}={v}" for k, v in error.context)
        print(f"[FAIL] {error.code.name}: {error.message}" + (f" ({context})" if context else ""))
    if errors:
        print(f"[FAIL] Found {len(errors)} violation(s).")
        return 1
    print("[PASS] Store invariants hold.")
    return 0


def cmd_log(store: NarrativeStore, args) -> int:
    """Dump the state event log."""
    events = store.log.state_events if args.all else store.log.active_state_events()
    print("MSG  | SWIPE | KIND         | SUBKIND                | ID")
    print("-" * 80)
    for event in fold_order(events):
        kind = event_kind(event)
        flag = " [DELETED]" if event.deleted else ""
        print(
            f"{event.message_id:<4} | {event.swipe_id:<5} | {kind:<12} | "
            f"{event.subkind_name or '-':<22} | {event.id[:8]}{flag}"
        )
    return 0


def cmd_state(store: NarrativeStore, args) -> int:
    """Dump point-in-time state."""
    chat = parse_chat(args.chat)
    message_id = args.message
    if message_id is None:
        message_id = store.log.last_message_with_events()
        if message_id < 0:
            print("[!] Store has no events.")
            return 0
    swipe_id = args.swipe if args.swipe is not None else canonical_swipe(message_id, chat)
    projection = store.project(message_id, swipe_id, chat)
    print(f"# message {message_id} swipe {swipe_id} hash {projection.state_hash()[:16]}")
    print(dumps(projection_to_dict(projection)))
    return 0


def cmd_milestones(store: NarrativeStore, args) -> int:
    """List milestones for a pair."""
    first, second = args.pair
    derived = store.derive_relationship(first, second)
    print(f"PAIR {derived.pair[0]} & {derived.pair[1]}  status={derived.status.value}")
    milestones = store.milestones_for_pair(first, second)
    if not milestones:
        print("    (no milestones)")
    for m in milestones:
        note = f" - {m.description}" if m.description else ""
        print(f"    msg {m.message_id:<4} {m.type:<24} {m.event_id[:8]}{note}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forensic Reporter")
    parser.add_argument("store", help="Path to store JSON file")
    parser.add_argument("--chat", default=None, help="Canonical swipes per message, e.g. 0,1,,0")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log store operations")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("verify", help="Verify store invariants")

    log_parser = subparsers.add_parser("log", help="Dump event log")
    log_parser.add_argument("--all", action="store_true", help="Include deleted events")

    state_parser = subparsers.add_parser("state", help="Dump projection")
    state_parser.add_argument("--message", type=int, default=None)
    state_parser.add_argument("--swipe", type=int, default=None)

    milestones_parser = subparsers.add_parser("milestones", help="List pair milestones")
    milestones_parser.add_argument("--pair", nargs=2, metavar=("A", "B"), required=True)

    return parser


COMMANDS = {
    "verify": cmd_verify,
    "log": cmd_log,
    "state": cmd_state,
    "milestones": cmd_milestones,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    try:
        parse_chat(args.chat)
    except ValueError:
        print(f"[!] Invalid --chat value: {args.chat!r}")
        return 2

    store = open_store(args.store)
    if store is None:
        return 1
    return handler(store, args)


if __name__ == "__main__":
    sys.exit(main())
