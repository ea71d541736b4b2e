# ---------------------------------
# TYPED EXCEPTIONS
# ---------------------------------
#
# Authorization denials are not exceptions: the validator returns a
# ``Decision`` with ``allowed=False`` and a reason.  Everything below is
# for the other three failure classes.


class ReviewEngineError(Exception):
    """Base class for engine failures."""


class RequestInputError(ReviewEngineError, ValueError):
    """Malformed or missing input.  Raised before authorization runs."""


class RequestNotFoundError(ReviewEngineError, KeyError):
    """No request exists with the given id."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class ConflictError(ReviewEngineError):
    """A conditional write lost a race (claim taken, status or version moved).

    Safe to retry after re-reading and re-validating the request.
    """


class CollaboratorError(ReviewEngineError):
    """An identity, permission, coverage or persistence collaborator failed."""
