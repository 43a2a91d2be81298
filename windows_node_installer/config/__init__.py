"""Configuration models for the installer."""
