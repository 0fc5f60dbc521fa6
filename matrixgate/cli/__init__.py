"""CLI module for matrixgate."""
