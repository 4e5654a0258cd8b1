"""Domain services; routers and the CLI call into these."""
