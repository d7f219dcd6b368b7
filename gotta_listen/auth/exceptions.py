"""Exceptions raised by the authentication layer."""


class SessionConflictError(Exception):
    """A session row with the same token already exists."""


class NotAuthenticatedError(Exception):
    """The request carries no usable session.

    Pages translate this into a redirect to the login page, API routes into a 401.
    """


class NotAuthorizedError(Exception):
    """The authenticated user lacks the privileges for the request."""
