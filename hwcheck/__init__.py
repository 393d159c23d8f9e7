"""Server hardware health checks."""

__version__ = "1.0.0"

from hwcheck.collector import ParallelCollector
from hwcheck.config import Settings, load_settings
from hwcheck.matcher import RequirementMatcher
from hwcheck.policy import Policy, load_policy, save_policy
from hwcheck.schema import validate_policy

__all__ = [
    "ParallelCollector",
    "Policy",
    "RequirementMatcher",
    "Settings",
    "load_policy",
    "load_settings",
    "save_policy",
    "validate_policy",
    "__version__",
]
