"""
sitesnap: Site Snapshot Pipeline

Turns a live web page into a self-contained local bundle (index.html,
styles.css and downloaded assets) that can be opened and edited offline.
"""

__version__ = "1.0"
__author__ = "sitesnap Project"
__description__ = "Site Snapshot Pipeline"

from .core.controller import replicate, SnapshotController
from .core.config import RunConfig
from .core.models import Target, RunResult

__all__ = ["replicate", "SnapshotController", "RunConfig", "Target", "RunResult"]
