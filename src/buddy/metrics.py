MIN_GENERATION_SECONDS = 0.01


def tokens_per_second(token_count: int | None, duration: float | None) -> float | None:
    """Throughput, or None when either input is missing or the duration is too short to divide by."""
    if not token_count or duration is None:
        return None
    if duration <= MIN_GENERATION_SECONDS:
        return None
    return token_count / duration
