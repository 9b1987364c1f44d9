"""AccountFlow — identity sign-up, email verification, and profile completion.

Two halves share one package: the Profile Service (a FastAPI app that
stores profile records keyed by the identity provider's user id) and
the Session Controller (the client-side state machine that reconciles
identity-provider sessions, federated sign-in, and the stored profile).
"""

__version__ = "0.1.0"
