"""
bidbell CLI package.

Command-line interface for the notification client.
"""
