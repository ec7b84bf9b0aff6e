"""Command-line interface adapters.

Maps command-line options onto configuration overrides.
"""
