"""toolgate: dynamic tool invocation for chat agents."""

__version__ = "0.1.0"
