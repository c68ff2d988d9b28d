"""Deploy compiled Sway contracts to a Fuel node.

- :py:mod:`fuel_deploy.deploy` runs a whole project or workspace

- :py:mod:`fuel_deploy.identity` predicts contract ids offline

- :py:mod:`fuel_deploy.cli` is the `fuel-deploy` command
"""

import sys

#: Keep in sync with `requires-python` in pyproject.toml
MIN_PYTHON_VERSION = (3, 10)

if sys.version_info[:2] < MIN_PYTHON_VERSION:
    _running = ".".join(str(part) for part in sys.version_info[:3])
    raise ImportError(f"fuel_deploy needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]}+, this is {_running}")
