import uuid


def as_uuid(value) -> uuid.UUID | None:
    """Return ``value`` as a UUID, or None when it is not a well-formed id."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
