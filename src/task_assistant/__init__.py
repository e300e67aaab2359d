"""Personal task manager with a tool-calling assistant."""

__version__ = "0.1.0"
