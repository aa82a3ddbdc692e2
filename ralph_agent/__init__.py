"""Ralph - iterative agent-turn loop for remote coding agents."""

__version__ = "0.1.0"
