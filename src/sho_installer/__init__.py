"""Installer for the OutSystems Self-Hosted Operator."""

__version__ = "1.0.0"
