"""Top-level package for the Spend Dashboard.

The dashboard's core is split into small modules:

* ``category_rules`` - ``%`` wildcard rules that categorize transactions
* ``budget_periods`` - recurring budget periods and their usage figures
* ``analytics`` - spending breakdowns for the overview and analytics views
* ``backend`` - per-user data operations over the SQLite store
* ``dashboard`` - concurrent data loaders for each view

Maintenance scripts live in ``scripts/``.
"""

from .auth import UserContext  # noqa: F401  # re-exported for convenience
from .backend import Backend  # noqa: F401  # re-exported for convenience

__all__ = ["Backend", "UserContext"]
