"""HTTP surface, configuration and backends for the stock detail view."""
