"""
auth — User authentication module.

Provides:
  • HMAC-signed session tokens
  • Password hashing (bcrypt)
  • Register / Login / Me API routes
  • ``get_current_user`` / ``get_optional_user`` FastAPI dependencies
  • The ``can_administer_auth_config`` predicate and the auth error taxonomy
"""
