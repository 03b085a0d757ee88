import os

# Deployment served by this process (32-byte hex identity)
DEPLOYMENT_ID = os.environ.get(
    "TOKENSALE_DEPLOYMENT_ID",
    "5b6f4e1a0c3d2e9f8a7b6c5d4e3f2a1b0c9d8e7f6a5b4c3d2e1f0a9b8c7d6e5f",
)

# Logging
LOG_LEVEL = os.environ.get("TOKENSALE_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
