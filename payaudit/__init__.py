"""Pay Audit - pay statement audit engine for military pay (LES)."""

__version__ = "0.1.0"
