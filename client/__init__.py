"""
client — the browser-side half of the Google sign-in flow, as a library.

Provides:
  • Per-purpose CSRF state tokens with single-use, in-progress tracking
  • An httpx client for the auth HTTP API
  • ``start_flow`` for the login / connect buttons
  • The callback orchestrator that drives one OAuth callback to completion
"""
