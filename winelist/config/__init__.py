"""Configuration module for the Wine List Generator."""
