from __future__ import annotations

from typing import Tuple

SEVERITY_LOW = "LOW"
SEVERITY_MEDIUM = "MEDIUM"
SEVERITY_HIGH = "HIGH"
SEVERITY_CRITICAL = "CRITICAL"

SEVERITY_CHOICES: Tuple[str, ...] = (
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    SEVERITY_HIGH,
    SEVERITY_CRITICAL,
)
SEVERITY_DEFAULT = SEVERITY_MEDIUM

ALERT_TYPE_DEFAULT = "Alert"
ALERT_TYPE_NONE = "No Alert"

RESULT_SOURCE = "NAFDAC Database Check"
VERIFICATION_METHOD = "Conservative NAFDAC Database Only"
