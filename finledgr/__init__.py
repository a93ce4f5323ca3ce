"""finledgr: learned categorization patterns for bank transactions."""

__version__ = "0.1.0"
