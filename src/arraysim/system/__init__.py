"""
Simulator configuration.

Examples
--------
```python
from arraysim.system import load_settings
settings = load_settings(port=9000)
```
"""

from .settings import (
    SETTINGS_SECTION,
    SimulatorSettings,
    create_default_settings_file,
    load_settings,
    settings_default_path,
    settings_to_config,
)

__all__ = [
    "SETTINGS_SECTION",
    "SimulatorSettings",
    "create_default_settings_file",
    "load_settings",
    "settings_default_path",
    "settings_to_config",
]
