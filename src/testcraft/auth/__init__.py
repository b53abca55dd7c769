"""Authentication.

Learn: Users sign in with email/password and receive a signed session
token. The token travels either as `Authorization: Bearer <token>` (API
clients, the CLI) or in the httponly `auth_token` cookie (browsers).
Both resolve to the same ACTIVE User row, or to nobody.
"""
