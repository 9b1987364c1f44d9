"""Bearer tokens, password hashing, and request authentication.

Learn: Every Profile Service route resolves the bearer token to a
CurrentIdentity before touching the store. Token verification itself is
delegated to an IdentityAdmin (the identity provider's server-side API),
so the service never trusts a client-supplied subject id.
"""
