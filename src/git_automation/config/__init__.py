"""
Configuration for git_automation.

:mod:`git_automation.config.loader` reads the tool's own settings;
:mod:`git_automation.config.configuration` reads git configuration
variables through dulwich.
"""

from .configuration import ConfigurationEntry, ConfigurationLevel, get_string  # noqa: F401
from .loader import ConfigError, load_config  # noqa: F401
