"""Service layer: database access and business rules."""
