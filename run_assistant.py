#!/usr/bin/env python3
"""
Runner script for the Streaming Voice Assistant console client.

This script provides a simple way to run the assistant with default settings.
For more advanced usage, import the module and create a custom configuration.

Usage:
    python run_assistant.py [--backend-url URL] [--verbose]
"""

from streaming_voice_assistant.cli import main


if __name__ == '__main__':
    main()
