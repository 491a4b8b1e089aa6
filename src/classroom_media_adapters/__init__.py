"""Single selection point for classroom media backends (aws, memory, noop)."""
