"""Prompt templates for the four analysis kinds.

Each prompt ends with the exact JSON shape the codec expects back. Field
names are snake_case to match the result models one-to-one.
"""

from __future__ import annotations

from collections.abc import Sequence

from fishbowl.gateway.security import sanitize_for_llm
from fishbowl.themes.models import Theme

THEME_DISCOVERY_PROMPT = """\
You are a thoughtful reader of someone's private journal. Find the 3 to 5 \
most significant themes that keep coming back in the entries below.

For every theme give:
- name: two or three words
- summary: one or two sentences addressed to the writer as "you" \
(write "You keep returning to..." rather than "The author...")
- frequency: how many times it meaningfully comes up
- examples: one or two short quotes
- evolution: a short note on how the theme has been changing

Reply with JSON only, in exactly this shape:
```json
{{
  "themes": [
    {{
      "name": "Career Transition",
      "summary": "You are getting ready for an interview while feeling the pressure to land a job soon.",
      "frequency": 3,
      "examples": ["quote"],
      "evolution": "Your focus has narrowed from a general search to preparing for specific interviews."
    }}
  ]
}}
```

Stay warm and personal throughout.

JOURNAL ENTRIES:
{entries}"""

DAILY_ANALYSIS_PROMPT = """\
Look at what you wrote over the last 24 hours and pick out the themes and \
patterns that matter. Never recommend therapy, counseling or professional \
mental health services.

YOUR THOUGHTS FROM THE LAST 24 HOURS:
{thoughts}

THEMES YOU HAVE BEEN CARRYING:
{context}

Cover:
1. The main themes running through these thoughts
2. Which broad areas of life they touch (personal growth, relationships, \
work, creative projects)
3. Insights, progress or recurring ideas worth noticing
4. Areas that could use more attention

Reply with valid JSON inside a ```json fenced block and nothing else:
```json
{{
  "themes_today": ["Theme 1", "Theme 2"],
  "overarching_areas": ["Area 1", "Area 2"],
  "key_insights": ["Insight 1", "Insight 2"],
  "focus_areas": ["Focus area 1", "Focus area 2"]
}}
```

Every item must be a complete sentence spoken directly to the writer. No \
ellipses, no truncation."""

WEEKLY_ANALYTICS_PROMPT = """\
Step back and look at how these thoughts have developed over the last while.

THEMES YOU HAVE BEEN CARRYING:
{themes}

RECENT ENTRIES:
{entries}

Describe:
1. How your view on each theme has moved
2. Patterns or cycles worth knowing about
3. Breakthroughs and realizations
4. What you are still working through
5. When and how you think best
6. How energy and mood shift across the entries
7. Concrete, personal next steps

Reply with a JSON object with exactly these fields:
```json
{{
  "theme_evolution": ["..."],
  "patterns_discovered": ["..."],
  "breakthroughs": ["..."],
  "obstacles": ["..."],
  "productivity_insights": ["..."],
  "emotional_patterns": ["..."],
  "personalized_actions": ["..."]
}}
```

Keep it conversational and practical."""

DEEP_THEME_PROMPT = """\
This theme keeps showing up in your journal. Let's look at it closely.

THEME: {name}
WHAT IT IS ABOUT: {summary}
TIMES IT HAS COME UP: {frequency}
HOW IT HAS CHANGED: {evolution}

RELATED ENTRIES:
{entries}

Explore how your thinking on it has changed, what tends to bring it up, how \
you usually handle it, what has helped, where you get stuck, and what might \
help next.

Reply with a JSON object with exactly these fields:
```json
{{
  "evolution_analysis": "How your perspective has grown over time",
  "triggers": ["..."],
  "patterns": ["..."],
  "discovered_solutions": ["..."],
  "stuck_points": ["..."],
  "specific_suggestions": ["..."]
}}
```

Keep it direct and conversational."""


def build_theme_discovery_prompt(content: str) -> str:
    return THEME_DISCOVERY_PROMPT.format(entries=content)


def build_daily_prompt(thoughts: str, relevant_themes: Sequence[Theme]) -> str:
    """Daily prompt over the sanitized last-24h text and matching themes."""
    context = "\n".join(f"{t.name}: {t.summary}" for t in relevant_themes) or "(none yet)"
    return DAILY_ANALYSIS_PROMPT.format(thoughts=sanitize_for_llm(thoughts), context=context)


def build_weekly_prompt(themes: Sequence[Theme], entries: Sequence[str]) -> str:
    themes_text = "\n\n".join(
        f"{t.name}: {t.summary}\nMentions: {t.frequency}\nEvolution: {t.evolution}"
        for t in themes
    )
    entries_text = "\n\n".join(f"Entry {i}: {text}" for i, text in enumerate(entries, start=1))
    return WEEKLY_ANALYTICS_PROMPT.format(themes=themes_text or "(none yet)", entries=entries_text)


def build_deep_theme_prompt(theme: Theme, entries: Sequence[str]) -> str:
    return DEEP_THEME_PROMPT.format(
        name=theme.name,
        summary=theme.summary.strip(),
        frequency=theme.frequency,
        evolution=theme.evolution,
        entries="\n\n".join(entries),
    )
