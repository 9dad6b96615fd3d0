"""Root conftest — shared test configuration."""

import os

# Never reach a real backend or the real gateway CDN from tests
os.environ.setdefault("API_BASE_URL", "http://backend.test")
os.environ.setdefault("GATEWAY_SCRIPT_URL", "http://cdn.test/checkout.js")
os.environ.setdefault("LOG_FORMAT", "text")
