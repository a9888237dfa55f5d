"""Settings, configuration and logging setup."""
