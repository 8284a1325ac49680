# Test package marker; conftest and tests import helpers as `tests.helpers`.
