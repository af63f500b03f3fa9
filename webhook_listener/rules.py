"""
Forwarding rules - which webhooks get relayed where
"""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Sequence, Tuple

from .events import ALL_EVENTS


@dataclass(frozen=True)
class ForwardingRule:
    """Relay every webhook whose type is in `events` to `url`.

    An `all_events` rule also accepts event types added to the known list
    after it was built.
    """

    url: str
    events: FrozenSet[str]
    all_events: bool = False

    def __post_init__(self):
        if not self.url:
            raise ValueError("Forwarding URL must not be empty")
        # Accept any iterable of event names
        object.__setattr__(self, 'events', frozenset(self.events))
        if not self.events and not self.all_events:
            raise ValueError(f"Forwarding rule for {self.url} has no events")

    @classmethod
    def for_all_events(cls, url: str, known_events: Sequence[str] = ALL_EVENTS) -> 'ForwardingRule':
        """Rule that relays every known event type, now and later."""
        return cls(url, frozenset(known_events), all_events=True)

    def accepts(self, event_type: str, known_events: Sequence[str] = ALL_EVENTS) -> bool:
        if self.all_events and event_type in known_events:
            return True
        return event_type in self.events

    def covers_all(self, known_events: Sequence[str] = ALL_EVENTS) -> bool:
        """Whether the rule subscribes to every event in `known_events`."""
        return self.all_events or all(event in self.events for event in known_events)


class RuleMatcher:
    """Ordered, read-only set of forwarding rules."""

    def __init__(self, rules: Iterable[ForwardingRule], known_events: Sequence[str] = ALL_EVENTS):
        self.rules: Tuple[ForwardingRule, ...] = tuple(rules)
        self.known_events = known_events

    def __len__(self) -> int:
        return len(self.rules)

    def __bool__(self) -> bool:
        return bool(self.rules)

    def match(self, event_type: str) -> List[ForwardingRule]:
        """Return the rules accepting `event_type`, in their original order."""
        return [rule for rule in self.rules if rule.accepts(event_type, self.known_events)]

    def describe(self, rule: ForwardingRule) -> str:
        if rule.covers_all(self.known_events):
            return 'All Events'
        return format_events(rule.events, self.known_events)


def format_events(events: Iterable[str], known_events: Sequence[str] = ALL_EVENTS) -> str:
    """Human readable label for an event set.

    The label is computed against the known events at call time, so a set
    that stops covering a newly added event type loses its "All Events" label.
    """
    events = set(events)
    if known_events and all(event in events for event in known_events):
        return 'All Events'

    ordered = [event for event in known_events if event in events]
    ordered += sorted(events.difference(known_events))
    return ','.join(ordered)


def parse_forwarding_rule(value: str, known_events: Sequence[str] = ALL_EVENTS) -> ForwardingRule:
    """Parse the `--forward-to` syntax.

    `URL` relays all known events, `EVENT[,EVENT...]=URL` relays only the
    listed ones.
    """
    value = value.strip()
    prefix, sep, rest = value.partition('=')

    # An '=' inside the URL's query string is not an event list separator
    if not sep or '://' in prefix:
        return ForwardingRule.for_all_events(value, known_events)

    events = [event.strip() for event in prefix.split(',') if event.strip()]
    unknown = [event for event in events if event not in known_events]
    if unknown:
        raise ValueError(
            f"Unknown event(s): {', '.join(unknown)}. "
            f"Known events: {', '.join(known_events)}"
        )

    return ForwardingRule(rest.strip(), frozenset(events))
