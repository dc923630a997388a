"""Pomodoro session lifecycle and phase-notification backend."""

__version__ = "1.0.0"
