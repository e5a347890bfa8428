import os

# Settings are loaded at import time and refuse to start without a secret
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-the-pytest-suite-0123456789")
os.environ.setdefault("DATABASE_PATH", "test_eduimprove.db")
os.environ.setdefault("REPORT_DISPATCH_DELAY", "0")
