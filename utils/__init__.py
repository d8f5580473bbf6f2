"""Client side helpers and pure utilities of the bench harness."""
