"""Domain entities, value objects and service protocols."""
