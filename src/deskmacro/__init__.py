"""deskmacro -- declarative desktop UI macros with an input recorder."""

__version__ = "0.1.0"
