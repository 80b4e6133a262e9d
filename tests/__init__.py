"""partition-foundry test suite."""
