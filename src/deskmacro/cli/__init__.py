"""deskmacro command-line interface."""
