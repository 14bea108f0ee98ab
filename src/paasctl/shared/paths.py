"""Locations under ~/.paasctl/.

    ~/.paasctl/config.yaml      persisted CLI settings (see paasctl.config)
    ~/.paasctl/paasctl.log      JSON log written with --log-file
    ~/.paasctl/backups/<stamp>  default `paasctl backup` target
"""

from pathlib import Path

PAASCTL_DIR = Path.home() / ".paasctl"

# Log files live next to config.yaml
LOG_DIR = PAASCTL_DIR

BACKUP_DIR = PAASCTL_DIR / "backups"


def ensure_dirs() -> None:
    """Create ~/.paasctl and its backups directory, user-only (0o700).

    Backups contain the gitea and registry credentials in clear text.
    """
    for directory in (PAASCTL_DIR, BACKUP_DIR):
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)


def get_log_file(name: str = "paasctl") -> Path:
    return LOG_DIR / f"{name}.log"
