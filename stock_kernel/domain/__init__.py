"""Pure domain types: clock and workflow definitions."""
