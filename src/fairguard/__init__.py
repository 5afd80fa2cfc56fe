"""
FairGuard - AI-Assisted Community Moderation Engine

FairGuard is the decision and warning-lifecycle engine behind a chat moderation
bot. It screens messages against word lists, escalates ambiguous cases to a
language-model judge, keeps a graduated warning ledger with automatic expiry,
arbitrates moderator abuse-of-power and user appeals, and bridges human
confirmation workflows.

Core Components:

- **Warning Ledger**: Durable per-user warning records with expiry and an
  always-consistent active count
- **Word Lists**: Blacklist/graylist snapshots reloaded from the store on every
  mutation
- **Classifier Gateway**: Provider-agnostic AI judge with timeouts, retries and
  strict verdict parsing
- **Moderation Pipeline**: Per-message blacklist → graylist+AI → spam/length+AI
  flow and the shared punishment policy
- **Arbitration**: Abuse checks on manual warns, appeal adjudication and AI
  confirmation flows
- **Pending Caches / Rate Limiter**: TTL-keyed confirmation state and per-user
  command throttling

Usage:
    from fairguard.main import build_engine
    engine = build_engine()
    await engine.start()
"""
