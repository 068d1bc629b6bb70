"""Translate domain failures into HTTP responses"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from collections_engine.domain.exceptions import (
    AggregationFailed,
    DependencyUnavailable,
    TenantIsolationError,
)


@contextmanager
def domain_errors(request_id: str, tenant_id: str, db: Optional[Session] = None) -> Iterator[None]:
    """
    Wrap an endpoint body.

    - AggregationFailed -> 422 with the per-customer reasons
    - TenantIsolationError -> 500, logged as an error; never shown to the caller
    - DependencyUnavailable -> 503
    """
    context = {"request_id": request_id, "tenant_id": tenant_id}
    try:
        yield
    except HTTPException:
        raise
    except AggregationFailed as e:
        if db is not None:
            db.rollback()
        logging.warning(f"Aggregation failed: {e}", extra=context)
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(e),
                "errors": [
                    {"customer_id": err.customer_id, "field": err.field, "reason": err.message}
                    for err in e.errors
                ],
            },
        )
    except TenantIsolationError as e:
        if db is not None:
            db.rollback()
        logging.error(
            f"Tenant isolation violated: {e}",
            extra={**context, "found_tenant_id": e.found_tenant_id, "record": e.record},
        )
        raise HTTPException(status_code=500, detail="Internal server error")
    except DependencyUnavailable as e:
        if db is not None:
            db.rollback()
        logging.error(f"Dependency unavailable: {e}", extra=context)
        raise HTTPException(status_code=503, detail="Storage unavailable")
    except Exception as e:
        if db is not None:
            db.rollback()
        logging.error(f"Unexpected error: {e}", extra=context)
        raise HTTPException(status_code=500, detail="Internal server error")
