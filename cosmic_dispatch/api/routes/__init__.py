from . import cron

__all__ = ["cron"]
