"""Launcher core: launch command synthesis, verified resource installs and process supervision."""

__version__ = "0.1.0"
