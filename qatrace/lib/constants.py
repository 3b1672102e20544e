"""Shared constants for qatrace."""

import re

# Run results accepted by the ledger
RESULT_PASS = "pass"
RESULT_FAIL = "fail"
VALID_RESULTS = (RESULT_PASS, RESULT_FAIL)

# Per-step outcomes; "unset" is stored as null
STEP_SKIP = "skip"
STEP_UNSET = "unset"
VALID_STEP_RESULTS = (RESULT_PASS, RESULT_FAIL, STEP_SKIP)
MAX_STEP_NAME_LEN = 500

# Store layout
DEFAULT_RUNS_ROOT = "qa-runs"
DEFAULT_TESTCASES_ROOT = "qa-testcases"
DEFAULT_BRANCH = "main"
DEFAULT_DEFECT_LABEL = "bug"
PATH_MARKER = "__"
LATEST_FILENAME = "latest.json"
RUN_FILE_PATTERN = re.compile(r'^run-(\d+)(?:-([a-z0-9]+))?\.json$')

# Run listing
DEFAULT_RUNS_LIMIT = 20
MAX_RUNS_LIMIT = 50

# Write retry policy
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_BASE_MS = 100
DEFAULT_BACKOFF_CAP_MS = 1000

# Matrix cache
DEFAULT_MATRIX_TTL_SECONDS = 60
