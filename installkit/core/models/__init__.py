"""
Domain models for the installation engine.

All models are re-exported here for convenient access:

    from installkit.core.models import InstallAction, InstallMode, InstallProduct
"""

from installkit.core.models.action import (
    DEFAULT_PROGRESS_WEIGHT,
    InstallAction,
    InstallPhase,
    sort_by_phase,
)
from installkit.core.models.description import ActionSpec, InstallDescription, UninstallMode
from installkit.core.models.location import InstallLocation
from installkit.core.models.mode import InstallMode
from installkit.core.models.plan import PlanOperation, Requirement, Unit
from installkit.core.models.product import (
    InstallProduct,
    ProductRange,
    ProductStatus,
    UnitId,
)
from installkit.core.models.result import OperationResult

__all__ = [
    # action.py
    "DEFAULT_PROGRESS_WEIGHT",
    "InstallAction",
    "InstallPhase",
    "sort_by_phase",
    # description.py
    "ActionSpec",
    "InstallDescription",
    "UninstallMode",
    # location.py
    "InstallLocation",
    # mode.py
    "InstallMode",
    # plan.py
    "PlanOperation",
    "Requirement",
    "Unit",
    # product.py
    "InstallProduct",
    "ProductRange",
    "ProductStatus",
    "UnitId",
    # result.py
    "OperationResult",
]
