"""Core layer - configuration, logging, exceptions, clock."""
