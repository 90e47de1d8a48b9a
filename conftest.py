import pytest

from test_qrpng import TestResult


@pytest.fixture
def r(request):
    """Result object the harness passes to each test as `r`."""
    return TestResult(request.node.name)
