"""Fishbowl - local-model analysis of a private journal.

Entries are analyzed daily and weekly by a locally hosted Ollama model, and
recurring themes are tracked in an index that decays over time.
"""

__version__ = "0.1.0"
