"""Typed errors raised by the engine. Callers translate them; the engine never retries."""


class ActorGraphError(Exception):
    """Base class for every error the engine raises on purpose."""


class ValidationError(ActorGraphError, ValueError):
    """Malformed input: self-link, missing field, unknown category, bad dates."""


class NotFoundError(ActorGraphError):
    """Referenced actor, share, relationship or assignment does not exist (or is soft-deleted)."""


class InvalidStateError(ActorGraphError):
    """Operation not allowed in the record's current lifecycle state."""


class ConflictError(ActorGraphError):
    """A concurrent write would break an exclusivity invariant."""
