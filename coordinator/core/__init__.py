"""Core infrastructure: configuration, database, exceptions, events and collaborators."""
