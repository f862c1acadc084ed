import pytest

from markdownlang.mdl_modules import reset_module_cache


@pytest.fixture(autouse=True)
def fresh_module_cache():
    """Every test starts and ends with an empty process-wide module cache."""
    reset_module_cache()
    yield
    reset_module_cache()
