"""Report adapters for presenting test results.

Implementations support:
- Stdout (terminal pretty-print)
"""
