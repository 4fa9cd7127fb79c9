"""CLI module for smartroute."""
