"""Infrastructure adapters: settings, logging, persistence and host lookups."""
