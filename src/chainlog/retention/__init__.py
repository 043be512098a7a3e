from chainlog.retention.manager import RetentionManager
from chainlog.retention.policy import (
    PolicyLoader,
    RetentionPolicy,
    RetentionPolicySet,
    load_policies,
)

__all__ = [
    "PolicyLoader",
    "RetentionManager",
    "RetentionPolicy",
    "RetentionPolicySet",
    "load_policies",
]
