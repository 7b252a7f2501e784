"""Load, merge and fill in defaults for virtual machine instance configurations."""

__version__ = "0.1.0"