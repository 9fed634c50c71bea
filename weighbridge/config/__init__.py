"""Configuration handling."""
