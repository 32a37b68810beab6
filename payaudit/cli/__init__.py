"""Command-line interface for Pay Audit."""
