"""
Authentication for the web front door.

Design goals:
- Sign-in is delegated to an external OpenID Connect provider (Entra ID by default).
- Cookie-based session (HttpOnly, signed) for the same-origin UI.
- Redirect targets are validated before use (no open redirects).
"""
