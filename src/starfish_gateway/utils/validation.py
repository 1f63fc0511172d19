"""Input validation utilities."""


def parse_max_keys(value: str | None, default: int = 1000) -> int:
    """Parse a max-keys query parameter.

    Args:
        value: Raw parameter value (None when absent)
        default: Value used when the parameter is absent or empty

    Returns:
        Non-negative integer; 0 disables truncation

    Raises:
        ValueError: If the value is not a non-negative integer
    """
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"max-keys must be an integer, got {value!r}") from None
    if parsed < 0:
        raise ValueError("max-keys cannot be negative")
    return parsed
