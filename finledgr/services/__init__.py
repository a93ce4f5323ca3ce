"""Pattern engine services: matching, learning, storage and administration."""
