"""HTTP routers for the taskpoet API."""
