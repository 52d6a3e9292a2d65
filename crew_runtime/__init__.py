"""Agent, crew and task execution runtime."""

__version__ = "0.1.0"
