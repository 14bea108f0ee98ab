"""Named timeouts for deployment steps.

All timeouts except the poll interval scale with the configured multiplier,
so slow clusters can be accommodated with a single setting.
"""

# Base values, in seconds
DEPLOYMENT = 10 * 60
SYSTEM_DOMAIN = 2 * 60
POD_READY = 5 * 60
WARMUP_JOB_READY = 30 * 60
NAMESPACE_DELETION = 5 * 60
POLL_INTERVAL = 1.0

_multiplier = 1


def set_multiplier(multiplier: int) -> None:
    """Set the factor applied to every timeout."""
    global _multiplier
    if multiplier < 1:
        raise ValueError(f"timeout multiplier must be >= 1, got {multiplier}")
    _multiplier = multiplier


def to_deployment() -> float:
    return DEPLOYMENT * _multiplier


def to_system_domain() -> float:
    return SYSTEM_DOMAIN * _multiplier


def to_pod_ready() -> float:
    return POD_READY * _multiplier


def to_warmup_job_ready() -> float:
    return WARMUP_JOB_READY * _multiplier


def to_namespace_deletion() -> float:
    return NAMESPACE_DELETION * _multiplier


def poll_interval() -> float:
    return POLL_INTERVAL
