"""GeoNotes backend: cache, rate limiting and chat presence."""
