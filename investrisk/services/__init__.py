"""External service clients: AI gateway and market data provider."""
