"""Clinical engagement lifecycle service."""
