"""embedkv exceptions."""


class EmbedKVError(Exception):
    """Base exception for embedkv."""

    pass


class ConfigError(EmbedKVError):
    """Configuration error."""

    pass


class NotFoundError(EmbedKVError):
    """Key is absent or has expired."""

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"Key not found: {key}")


class GroupNotFoundError(NotFoundError):
    """Consumer group does not exist for the stream."""

    def __init__(self, key: str, group: str) -> None:
        self.group = group
        super().__init__(key, f"Consumer group '{group}' not found on stream {key}")


class WrongTypeError(EmbedKVError):
    """Operation against a key holding the wrong kind of value."""

    def __init__(self, key: str, expected: str, actual: str) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Key {key} holds a {actual} value, operation requires {expected}"
        )


class GroupAlreadyExistsError(EmbedKVError):
    """Consumer group already exists for the stream."""

    def __init__(self, key: str, group: str) -> None:
        self.key = key
        self.group = group
        super().__init__(f"Consumer group '{group}' already exists on stream {key}")


class InvalidStateError(EmbedKVError):
    """Transaction used outside the state that allows the call."""

    pass


class ConflictError(EmbedKVError):
    """A watched key changed before the transaction committed."""

    def __init__(self, keys: list[str]) -> None:
        self.keys = keys
        super().__init__(f"Watched keys modified: {', '.join(keys)}")


class InvalidStreamIdError(EmbedKVError, ValueError):
    """Stream id is malformed or not greater than the last id."""

    pass
