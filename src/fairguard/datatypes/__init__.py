"""
Data structures shared across FairGuard.

- **moderation_datatypes.py**: Persisted records (warnings, moderation log
  entries, banned words, pending confirmations, trust scores) and their enums.
- **outcome_datatypes.py**: Typed results returned by pipeline, arbitration,
  confirmation and word-list operations.
- **verdict_datatypes.py**: Structured classifier verdicts and the
  "classification unavailable" marker.
"""
