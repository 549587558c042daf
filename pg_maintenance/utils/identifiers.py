import string

_IDENTIFIER_CHARS = frozenset(string.ascii_letters + string.digits + "_")


def is_valid_identifier(name: str | None) -> bool:
    """Return True if ``name`` is non-empty and only ASCII letters, digits or '_'.

    Table and column names are interpolated into SQL text because they cannot
    be bound as parameters, so this check is the only thing standing between
    operator input and the statement.
    """
    if not isinstance(name, str) or not name:
        return False
    return all(ch in _IDENTIFIER_CHARS for ch in name)
