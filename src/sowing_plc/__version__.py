"""
Installed version of the 'sowing-plc' distribution.

Raises
------
PackageNotFoundError
    If the 'sowing-plc' package is not installed.
"""
from importlib.metadata import version

__version__: str = version("sowing-plc")
