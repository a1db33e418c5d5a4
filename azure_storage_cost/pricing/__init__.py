"""Retail price lookup: meter keys, unit parsing, API client, cache and resolver."""
