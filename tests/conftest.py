from __future__ import annotations

import os
import tempfile

# Point every data folder at a throwaway location before the package reads its
# environment.
_DATA_ROOT = tempfile.mkdtemp(prefix="mediarelay-tests-")
os.environ.setdefault("MEDIARELAY_SERVER_DATA", _DATA_ROOT)
os.environ.setdefault("MEDIARELAY_SERVER_VERBOSE", "0")
