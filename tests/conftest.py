import os
import sys
import tempfile

TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
PROJECT_ROOT = os.path.dirname(TESTS_DIR)
for path in (PROJECT_ROOT, TESTS_DIR):
    if path not in sys.path:
        sys.path.insert(0, path)

# Must be set before any service module creates its engine.
_db_dir = tempfile.mkdtemp(prefix="bms-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'bms.db')}"
os.environ["TESTING"] = "1"
os.environ.pop("REDIS_URL", None)
os.environ.pop("STRICT_STATUS_TRANSITIONS", None)
os.environ.pop("HOARDING_RELEASE_POLICY", None)
