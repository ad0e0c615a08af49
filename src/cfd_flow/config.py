"""Environment-derived defaults."""

import os

ESTIMATOR_URL = os.getenv("CFD_FLOW_ESTIMATOR_URL", "http://127.0.0.1:8000")

# Upper bound for one estimator round trip (two frames up, grid down).
ESTIMATOR_TIMEOUT_S = float(os.getenv("CFD_FLOW_ESTIMATOR_TIMEOUT_S", "120"))

# A seek that does not produce a frame within this window is treated as stalled.
SEEK_TIMEOUT_S = float(os.getenv("CFD_FLOW_SEEK_TIMEOUT_S", "5"))
