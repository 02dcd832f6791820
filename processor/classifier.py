"""Infer event type, opponent and venue from free-text feed fields."""
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from processor.models import Classification, EventType, LocationParts


@dataclass(frozen=True)
class OpponentMatcher:
    """Named pattern whose `group` captures the opponent."""
    name: str
    pattern: Pattern
    group: int

    def match(self, summary: str) -> Optional[str]:
        found = self.pattern.search(summary)
        if not found:
            return None
        return found.group(self.group).strip()


# Evaluated in order; the first match supplies the opponent.
OPPONENT_MATCHERS: Tuple[OpponentMatcher, ...] = (
    OpponentMatcher(
        name='versus',
        pattern=re.compile(r'\b(vs\.?|versus)\s+([^,]+)', re.IGNORECASE),
        group=2
    ),
    OpponentMatcher(
        name='at',
        pattern=re.compile(r'\b([^@]+?)\s+at\s+([^,]+)', re.IGNORECASE),
        group=2
    ),
    OpponentMatcher(
        name='home_away',
        pattern=re.compile(
            r'\((?:home|away)\)\s*(?:vs\.?|versus)\s+([^,]+)', re.IGNORECASE
        ),
        group=1
    ),
)

GAME_KEYWORDS = ('game', 'match')

# Checked in order when no game signal is present
KEYWORD_TYPES: Tuple[Tuple[str, EventType], ...] = (
    ('practice', EventType.PRACTICE),
    ('tournament', EventType.TOURNAMENT),
    ('scrimmage', EventType.SCRIMMAGE),
)

STREET_ADDRESS = re.compile(r'^\d|(?=.*[a-z])(?=.*\d)', re.IGNORECASE)


class EventClassifier:
    """Heuristic classifier for sports schedule summaries."""

    def __init__(self, matchers: Tuple[OpponentMatcher, ...] = OPPONENT_MATCHERS):
        self.matchers = matchers

    def find_opponent(self, summary: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Run the opponent matchers in priority order.

        Returns:
            Tuple of (matcher name, opponent), or (None, None)
        """
        for matcher in self.matchers:
            opponent = matcher.match(summary)
            if opponent:
                return matcher.name, opponent
        return None, None

    def classify(self, summary: str, description: str = '') -> Classification:
        """
        Classify an event from its summary.

        Args:
            summary: Event SUMMARY text
            description: Existing DESCRIPTION text

        Returns:
            Classification with type, display title and merged description
        """
        summary = summary or ''
        lowered = summary.lower()
        matcher_name, opponent = self.find_opponent(summary)

        if matcher_name or any(word in lowered for word in GAME_KEYWORDS):
            event_type = EventType.GAME
        else:
            event_type = next(
                (kind for word, kind in KEYWORD_TYPES if word in lowered),
                EventType.EVENT
            )
            opponent = None

        if event_type == EventType.GAME and opponent:
            title = f"Game vs {opponent}"
        else:
            title = event_type.value

        return Classification(
            event_type=event_type,
            title=title,
            description=self.merge_description(summary, description or '', opponent),
            opponent=opponent,
            matcher=matcher_name
        )

    @staticmethod
    def merge_description(summary: str, description: str, opponent: Optional[str]) -> str:
        """Prefix the original summary and note the opponent if missing."""
        if summary and summary not in description:
            description = f"{summary}\n\n{description}" if description else summary

        if (opponent
                and 'opponent' not in description.lower()
                and opponent not in description):
            description = (
                f"{description}\n\nOpponent: {opponent}"
                if description else f"Opponent: {opponent}"
            )
        return description

    @staticmethod
    def split_location(location: str, venue_title: Optional[str] = None) -> LocationParts:
        """
        Split a raw location into venue name and address.

        A structured venue title wins. Otherwise the text before the first
        comma is the venue unless it looks like a street address.
        """
        location = (location or '').strip()

        if venue_title and venue_title.strip():
            return LocationParts(address=location, venue_name=venue_title)

        if ',' not in location:
            return LocationParts(address=location)

        head = location.split(',', 1)[0].strip()
        if not head or STREET_ADDRESS.search(head):
            return LocationParts(address=location)
        return LocationParts(address=location, venue_name=head)
