"""HTTP routers of the Replenisher API."""
