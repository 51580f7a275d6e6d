"""Navigation: the state machine that loads, mutates and publishes route data.

One ``Router`` owns one authoritative ``NavigationState``.  Navigations,
submissions, fetchers and deferred values all funnel their results
through it, gated by cancellation signals and sequence numbers.
"""
