"""
SAAB HPD Command-Line Interface
===============================

This package provides the command-line tool for the SID protocol engine:

- **sidlink**: monitor the SID bus and send region commands

The tool is a Click-based CLI application with help for every command.
"""

__all__ = ["sidlink"]
