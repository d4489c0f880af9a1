"""Settings, logging and prompt configuration."""
