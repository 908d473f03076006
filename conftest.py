"""
Pytest configuration for kora.
Puts the project root on sys.path so the kora package imports without an install.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
