"""formulify -- named arithmetic formulas with dependency validation."""

__version__ = "0.1.0"
