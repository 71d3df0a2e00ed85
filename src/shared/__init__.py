"""Helpers shared across the fishbowl sub-packages."""
