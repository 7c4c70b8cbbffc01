"""
Domain error types
Pricing errors are caller mistakes (HTTP 400), persistence errors are operational (HTTP 500)
"""


class PricingError(ValueError):
    """Base class for rejected pricing input"""

    status_code = 400


class InvalidTierError(PricingError):
    """Unrecognized subscription tier"""

    def __init__(self, tier):
        self.tier = tier
        super().__init__(f"Invalid subscription tier: {tier!r}")


class InvalidQuantityError(PricingError):
    """Student or job-posting count that is not a positive integer"""

    def __init__(self, quantity, field: str = "quantity"):
        self.quantity = quantity
        self.field = field
        super().__init__(f"{field} must be an integer of at least 1, got {quantity!r}")


class InvalidCommissionRateError(PricingError):
    """Commission rate outside [0, 1]"""

    def __init__(self, rate):
        self.rate = rate
        super().__init__(f"Commission rate must be between 0 and 1, got {rate!r}")


class InvalidCourseSelectionError(PricingError):
    """Bulk quote requested for an empty course list"""

    def __init__(self):
        super().__init__("At least one course id is required")


class OverlappingTierError(PricingError):
    """New bulk bracket overlaps an active one"""

    status_code = 409

    def __init__(self, tier_name: str, conflicting_name: str):
        self.tier_name = tier_name
        self.conflicting_name = conflicting_name
        super().__init__(f"Tier '{tier_name}' overlaps active tier '{conflicting_name}'")


class InvalidStatusTransitionError(Exception):
    """Bulk enrollment request is no longer pending"""

    status_code = 409

    def __init__(self, request_id, current_status: str, target_status: str):
        self.request_id = request_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(f"Cannot move request {request_id} from {current_status} to {target_status}")


class PersistenceError(Exception):
    """Database failure during record creation, raised after rollback"""

    status_code = 500

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Database error during {operation}")
