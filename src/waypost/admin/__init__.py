"""Administrative read model and actions."""

from waypost.admin.status import (
    MANUAL_INTERVENTION_LABEL,
    StatusReport,
    StatusRow,
    build_status_report,
    reset_strategies,
    status_label,
    switch_to_next_strategy,
)

__all__ = [
    "MANUAL_INTERVENTION_LABEL",
    "StatusReport",
    "StatusRow",
    "build_status_report",
    "reset_strategies",
    "status_label",
    "switch_to_next_strategy",
]
