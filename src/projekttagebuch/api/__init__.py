"""HTTP API for projects and persons."""
