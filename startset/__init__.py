"""StartSet — Host-resident script lifecycle agent.

StartSet runs administrator-supplied scripts and installer packages at
lifecycle points of an operating-system session: system start, user logon,
and on-demand marker files.  Run-once payloads are tracked in per-scope
ledgers, and scripts can be gated on a recorded SHA-256 baseline and on
file ownership.

Architecture layers (bottom to top):
    1. Models / Layout — payload classes, outcomes, ledgers, directory map
    2. Services  — integrity ledger, access validator, connectivity monitor,
                   run-once tracker
    3. Processors — interpreter, command, executable and package runners
    4. Engine    — discovery, admission, filtering, dispatch, bookkeeping
    5. Triggers  — boot, logon and marker sources behind one dispatcher
    6. CLI       — typer administrative surface
"""

__version__ = "0.1.0"
__author__ = "StartSet Contributors"

from startset.models import ExecutionOutcome, ExecutionStatus, PayloadClass, TriggerKind

__all__ = [
    "__version__",
    "ExecutionOutcome",
    "ExecutionStatus",
    "PayloadClass",
    "TriggerKind",
]
