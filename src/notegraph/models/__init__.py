"""Domain and database models for notegraph."""
