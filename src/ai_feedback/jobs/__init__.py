"""Durable feedback job queue backed by SQLite.

Jobs are rows in `feedback_jobs`. Workers claim them with a conditional
UPDATE that re-checks the claim predicate, so any number of processes can
poll the same database and at most one of them holds a live claim per job.
A claim that is not finalized within the lock TTL becomes claimable again;
delivery is at-least-once and result writes are idempotent on the item
identity.
"""
