"""CLI command modules.

- operator: install, uninstall, get-console-url and status for the
  Self-Hosted Operator
"""

from .operator import run as operator_command

__all__ = ["operator_command"]
