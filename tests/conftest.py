from collections.abc import Callable
from datetime import datetime
from itertools import count
from typing import Any

import pytest

from spend_categorizer.models import Transaction

TransactionFactory = Callable[..., Transaction]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_transaction() -> TransactionFactory:
    ids = count(1)

    def factory(
        description: str,
        category: str | None = None,
        subcategory: str | None = None,
        amount: float = -10.0,
        date: datetime | None = None,
        **kwargs: Any,
    ) -> Transaction:
        return Transaction(
            id=kwargs.pop("id", f"tx-{next(ids)}"),
            date=date or datetime(2024, 1, 15),
            description=description,
            amount=amount,
            category=category,
            subcategory=subcategory,
            **kwargs,
        )

    return factory
