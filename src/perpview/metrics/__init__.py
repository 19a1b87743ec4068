"""Display metrics derived from canonical books."""
