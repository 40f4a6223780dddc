"""
Authentication helpers for the authgate service.

Design goals:
- GitHub OAuth (authorization-code flow) as the only identity provider.
- Cookie-based session (HttpOnly, signed) carrying a minimal user record.
- No server-side session state; expiry is enforced by the signature timestamp.
"""
