"""Chat command components."""
