"""HTTP layer: routes, response schemas and dependency providers."""
