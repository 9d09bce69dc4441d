"""jotdeck: tasks, notes and a journal in one keyboard-driven terminal app."""

__version__ = "0.3.0"
