"""unitindex - index the meaningful units of a convention-based codebase."""

__version__ = "0.1.0"
