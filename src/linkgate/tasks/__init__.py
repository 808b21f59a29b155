"""Background maintenance tasks."""

from linkgate.tasks.maintenance import run_periodic_sweep, sweep_expired

__all__ = ["run_periodic_sweep", "sweep_expired"]
