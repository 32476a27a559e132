"""
oauth — third-party (Google) sign-in and account linking.

Provides:
  • Admin-managed provider configuration (secret encrypted at rest)
  • OAuth2 authorization-URL generation
  • Server-side code → profile exchange
  • Reconciliation of a provider profile into a login or an account link
  • Public, admin and popup-callback API routes
"""
