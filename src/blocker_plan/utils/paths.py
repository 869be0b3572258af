import os
from pathlib import Path

from platformdirs import user_data_dir, user_log_dir

APP_DIR_NAME = "blocker_plan"
HOME_ENV_VAR = "BLOCKER_PLAN_HOME"

_PLATFORM_DIRS = {"data": user_data_dir, "logs": user_log_dir}


def find_dev_checkout(module_file: Path | None = None) -> Path | None:
    """Returns the checkout root when this module runs from src/, else None."""
    # <root>/src/blocker_plan/utils/paths.py
    root = Path(module_file or __file__).resolve().parents[3]
    if (root / "pyproject.toml").is_file() and (root / ".git").exists():
        return root
    return None


def app_dir(kind: str) -> Path:
    """
    Directory for one kind of app file, "data" or "logs".

    $BLOCKER_PLAN_HOME/<kind> wins, then <checkout>/outputs/<kind> in a dev
    checkout, then the platform's per-user directory.
    """
    if kind not in _PLATFORM_DIRS:
        raise ValueError(f"Unknown app directory kind: {kind!r}")
    home = os.environ.get(HOME_ENV_VAR)
    if home:
        return Path(home).expanduser() / kind
    checkout = find_dev_checkout()
    if checkout:
        return checkout / "outputs" / kind
    return Path(_PLATFORM_DIRS[kind](appname=APP_DIR_NAME))


def get_default_data_dir() -> Path:
    return app_dir("data")


def get_default_log_dir() -> Path:
    return app_dir("logs")
