from datetime import datetime
from io import StringIO

import pandas as pd

from dorm_sync.store.memory import InMemoryDocumentStore
from dorm_sync.utils.exceptions import StoreError

FIXED_NOW = datetime(2025, 3, 10, 15, 30)

EMPLOYEE_COLUMNS = [
    "employee",
    "uid",
    "arrival",
    "frequency",
    "invoice_number",
    "deposit_number",
    "start_date",
    "enddate",
    "contract_number",
    "company",
    "assignedproperty",
    "rent",
]


def employee_row(uid, **overrides):
    row = {
        "employee": f"Worker {uid}",
        "uid": uid,
        "arrival": "2025-03-01",
        "frequency": "1",
        "invoice_number": "INV-1",
        "deposit_number": "DEP-1",
        "start_date": "2025-03-01",
        "enddate": "2025-08-31",
        "contract_number": "CTR-1",
        "company": "Acme",
        "assignedproperty": "東海",
        "rent": "3200",
    }
    row.update(overrides)
    return row


def csv_bytes(rows, columns=None):
    df = pd.DataFrame(rows, columns=columns or EMPLOYEE_COLUMNS)
    buffer = StringIO()
    df.to_csv(buffer, index=False)
    return buffer.getvalue().encode("utf-8")


class FailingStore(InMemoryDocumentStore):
    """Fails the Nth commit (1-based)."""

    def __init__(self, fail_on, **kwargs):
        super().__init__(**kwargs)
        self.fail_on = fail_on
        self.attempts = 0

    def commit(self, ops):
        self.attempts += 1
        if self.attempts == self.fail_on:
            raise StoreError("write quota exceeded")
        super().commit(ops)
