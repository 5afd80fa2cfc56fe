"""
Moderation decision and warning-lifecycle engine.

- **warning_ledger.py**: per-user warnings with expiry and transactional count rebuild.
- **word_lists.py**: copy-on-write black/graylist snapshot backed by the store.
- **context.py**: conversation context snapshots around a message.
- **punishment.py**: warn vs delete-and-warn policy shared by every punitive path.
- **moderation_pipeline.py**: blacklist, graylist, spam/length and trust stages for inbound messages.
- **ai_confirmation.py**: two-phase operator confirmation of AI graylist verdicts.
- **manual_moderation.py**: moderator warns with abuse arbitration and pending confirmation.
- **appeals.py**: classifier-backed appeal adjudication.
- **rate_limiter.py**: fixed-window command throttle.
- **trust_score.py**: recomputed per-user trust snapshot.
"""
