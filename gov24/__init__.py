"""
Gov24 civic-service requirements connector.

This package contains the query-resolution pipeline:

- Extracting search queries from a message, document names or service items.
- Searching the Gov24 integrated search API and normalising raw records.
- Filtering by title relevance, with a loose fallback for free-text messages.
- Deduplicating matches across queries and guaranteeing a portal link.
- Composing a Korean reply that summarises the matched services.
"""
