"""Common type definitions."""

import os
from typing import Callable, Union
from pathlib import Path

# Anything accepted where a filesystem path is expected
PathLike = Union[str, Path, os.PathLike]

# Stand-in for time.sleep, injectable in tests
SleepFunc = Callable[[float], None]

# Receives one line of remote task console output
LineHandler = Callable[[str], None]
