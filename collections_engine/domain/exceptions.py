"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class DataError(DomainException):
    """A ledger field for one customer cannot be parsed or is out of range"""

    def __init__(self, customer_id: str, field: str, message: str):
        super().__init__(f"customer {customer_id}: {field}: {message}")
        self.customer_id = customer_id
        self.field = field
        self.message = message


class AggregationFailed(DomainException):
    """Every customer in a batch failed, so there is nothing to report"""

    def __init__(self, errors: list[DataError]):
        super().__init__(f"All {len(errors)} customers failed aggregation")
        self.errors = errors


class TenantIsolationError(DomainException):
    """A record from another tenant reached a tenant-scoped computation"""

    def __init__(self, expected_tenant_id: str, found_tenant_id: str, record: str):
        super().__init__(
            f"{record} belongs to tenant {found_tenant_id!r}, expected {expected_tenant_id!r}"
        )
        self.expected_tenant_id = expected_tenant_id
        self.found_tenant_id = found_tenant_id
        self.record = record


class DependencyUnavailable(DomainException):
    """Storage or another collaborator failed; callers decide whether to retry"""

    pass
