"""Policy collaborator adapters."""
