"""
weblogin: a web front door that signs users in with an external OpenID
Connect provider and keeps a signed local session cookie.
"""

__version__ = "0.1.0"
