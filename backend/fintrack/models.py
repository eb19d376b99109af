"""Import every model module so ``Base.metadata`` knows about all tables."""

import fintrack.auth.models  # noqa: F401
import fintrack.categories.models  # noqa: F401
import fintrack.recurring.models  # noqa: F401
import fintrack.transactions.models  # noqa: F401
