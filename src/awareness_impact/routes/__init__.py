"""HTTP routers for awareness impact service."""
