#!/usr/bin/env python3
"""
segscribe Entry Point Script

This script initializes the CLI handler and runs the requested command.
"""

from segscribe.cli import CLIHandler

if __name__ == "__main__":
    cli = CLIHandler()
    cli.run()
