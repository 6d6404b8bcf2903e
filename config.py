import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        data_dir: Path,
        timezone: str,
        recurrence_horizon_days: int,
        recurrence_max_instances: int,
        budget_account_scope: str,
    ) -> None:
        self.data_dir = data_dir
        self.timezone = timezone
        self.recurrence_horizon_days = recurrence_horizon_days
        self.recurrence_max_instances = recurrence_max_instances
        self.budget_account_scope = budget_account_scope


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    timezone = os.getenv("FINTRACK_TIMEZONE", "Europe/London")
    horizon_days = int(os.getenv("FINTRACK_RECURRENCE_HORIZON_DAYS", "365"))
    max_instances = int(os.getenv("FINTRACK_RECURRENCE_MAX_INSTANCES", "1000"))
    account_scope = os.getenv("FINTRACK_BUDGET_ACCOUNT_SCOPE", "type").lower()
    if account_scope not in ("type", "account"):
        raise ValueError(
            f"FINTRACK_BUDGET_ACCOUNT_SCOPE must be 'type' or 'account', got {account_scope!r}"
        )
    return Settings(
        data_dir=data_dir,
        timezone=timezone,
        recurrence_horizon_days=horizon_days,
        recurrence_max_instances=max_instances,
        budget_account_scope=account_scope,
    )
