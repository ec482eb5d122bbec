"""Short link service: code generation, cache-aside resolution, click recording and analytics."""
