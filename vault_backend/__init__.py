"""Payment-verified product download gateway."""

__version__ = "0.1.0"
