"""BurnRate: reconciled Claude subscription usage per local profile."""

__version__ = "0.1.0"
