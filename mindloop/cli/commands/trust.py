"""Trust CLI commands."""

import asyncio
from typing import TYPE_CHECKING

from mindloop.types import RelationshipEventKind

if TYPE_CHECKING:
    from mindloop.runtime import Runtime


def _bar(level: float) -> str:
    filled = int(round(level))
    return "█" * filled + "░" * (10 - filled)


def cmd_trust(args, runtime: "Runtime"):
    """Record and inspect relationship trust."""
    scorer = runtime.trust
    action = getattr(args, "trust_action", None)

    if action == "record":
        level = asyncio.run(
            scorer.record_event(
                args.subject,
                RelationshipEventKind(args.kind),
                args.impact,
                args.description,
                emotional_response=args.emotion,
            )
        )
        print(f"Recorded {args.kind} with {args.subject}. Trust is now {level:.1f}/10.")

    elif action == "show":
        metric = asyncio.run(scorer.get_metric(args.subject))
        print(f"Trust: {metric.subject}")
        print(f"  Trust:    [{_bar(metric.trust_level)}] {metric.trust_level:.1f}")
        print(f"  Intimacy: [{_bar(metric.intimacy_level)}] {metric.intimacy_level:.1f}")
        print(f"  Events:   {metric.total_shared_events}")
        if asyncio.run(scorer.needs_healing(args.subject)):
            print("  Unresolved events older than an hour need attention.")

    elif action == "history":
        entries = asyncio.run(scorer.history(args.subject, args.limit))
        if not entries:
            print(f"No trust history for: {args.subject}")
            return
        for e in entries:
            when = e.created_at.strftime("%Y-%m-%d %H:%M") if e.created_at else "?"
            print(f"  {when}  {e.trust_level:4.1f} ({e.change:+.1f})  {e.reason}")

    elif action == "patterns":
        if args.learn:
            learned = asyncio.run(scorer.learn_patterns(args.subject))
            print(f"Learned {len(learned)} pattern(s).")
        patterns = runtime.storage.get_relationship_patterns(args.subject)
        if not patterns:
            print(f"No patterns for: {args.subject}")
            return
        for p in patterns:
            print(f"  [{p.confidence}/10, seen {p.evidence_count}x] {p.pattern}")

    elif action == "resolve":
        if asyncio.run(scorer.resolve_event(args.event_id)):
            print(f"Resolved event {args.event_id}.")
        else:
            print(f"No unresolved event with id {args.event_id}.")
