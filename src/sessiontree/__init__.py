"""sessiontree — reconstruct and browse branching AI coding-assistant sessions."""

__version__ = "0.1.0"
