"""Track live coding-agent terminal sessions as a project-grouped list."""
