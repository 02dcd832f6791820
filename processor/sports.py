"""Display colors for sports and providers."""
from typing import Optional

DEFAULT_COLOR = '#64748B'

SPORT_COLORS = {
    'Soccer': '#10B981',
    'Baseball': '#F59E0B',
    'Basketball': '#EF4444',
    'Swimming': '#3B82F6',
    'Tennis': '#8B5CF6',
    'Volleyball': '#EC4899',
    'Football': '#6366F1',
    'Hockey': '#14B8A6',
    'Lacrosse': '#F97316',
    'Track': '#06B6D4',
    'Golf': '#84CC16',
    'Gymnastics': '#F43F5E',
    'Wrestling': '#8B5CF6',
    'Cross Country': '#059669',
    'Unknown': DEFAULT_COLOR,
    'Other': DEFAULT_COLOR,
}

PROVIDER_COLORS = {
    'SportsEngine': '#2563EB',
    'Playmetrics': '#10B981',
    'TeamSnap': '#F97316',
    'Imported': '#8B5CF6',
}


def sport_color(sport: Optional[str], override: Optional[str] = None) -> str:
    """Color for a sport; a color stored on the connection wins."""
    if override:
        return override
    return SPORT_COLORS.get(sport or 'Unknown', DEFAULT_COLOR)


def provider_color(provider: Optional[str]) -> str:
    return PROVIDER_COLORS.get(provider or '', PROVIDER_COLORS['Imported'])
