"""Ask Your Graph: query compilation and adaptive retrieval over block graphs."""

__version__ = "0.1.0"
