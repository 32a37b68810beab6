"""Rich renderers for CLI output."""

from .audit_renderer import render_audit

__all__ = ["render_audit"]
