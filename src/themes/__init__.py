"""Theme Index: recurring topics tracked with frequency and evolution."""

from fishbowl.themes.index import ThemeIndex
from fishbowl.themes.models import EVOLUTION_SEPARATOR, Theme, extend_evolution

__all__ = [
    "EVOLUTION_SEPARATOR",
    "Theme",
    "ThemeIndex",
    "extend_evolution",
]
