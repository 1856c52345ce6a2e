"""Supervisor for cooperating CLI text-generation agents driven by a shared task file."""

__version__ = "0.1.0"
