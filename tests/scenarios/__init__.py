"""End-to-end scenario tests for idempotent newsletter publishing.

Each scenario exercises one aspect of the claim/replay protocol against a
real database: sequential replay, concurrent submits, failure rollback,
retention, the HTTP endpoint, and bounded waits.
"""
