"""
Record transformation: validation, scoring and derived fields.
"""

from .customer_transformer import CustomerTransformer
from .derivations import customer_lifetime_value, revenue_tier, tenure_factor

__all__ = [
    "CustomerTransformer",
    "customer_lifetime_value",
    "revenue_tier",
    "tenure_factor",
]
