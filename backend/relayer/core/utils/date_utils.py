from datetime import date, datetime, timezone


def timezone_now() -> datetime:
    return datetime.now().astimezone()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_day(moment: datetime) -> date:
    """Calendar day of a moment in UTC (naive datetimes are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone.utc).date()


def epoch_to_utc_datetime(epoch: float | int) -> datetime:
    if epoch > 1e15 or epoch < -1e15:
        epoch /= 1_000_000
    elif epoch > 1e11 or epoch < -1e11:
        epoch /= 1_000
    return datetime.fromtimestamp(epoch, tz=timezone.utc)
