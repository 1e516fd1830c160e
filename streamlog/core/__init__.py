"""Core components: identifiers, log storage and serialization primitives."""
