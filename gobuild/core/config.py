"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    GOBUILD_GO_VERSION            — Default golang image tag (default: 1.23.4)
    GOBUILD_DOCKER_VERSION        — Docker-in-Docker version tag (default: 24.0)
    GOBUILD_BASE_IMAGE            — Image receiving build artifacts (default: ubuntu:latest)
    GOBUILD_LINT_IMAGE            — golangci-lint image (default: golangci/golangci-lint:latest)
    GOBUILD_GIT_IMAGE             — Image used to clone remote trees (default: alpine/git:latest)
    GOBUILD_TAR_IMAGE             — Image used by the tar utility (default: alpine:3.18)
    GOBUILD_REQUIRE_DOCKER        — Abort when the docker sidecar cannot be attached (default: false)
    GOBUILD_SERVICE_START_TIMEOUT — Seconds to wait for a service to reach "running" (default: 30)
    GOBUILD_MAX_WORKERS           — Thread pool size for fan-out evaluation (default: 8)
    GOBUILD_NETWORK_PREFIX        — Prefix of the per-session bridge network (default: gobuild)
    GOBUILD_ARTIFACT_ROOT         — Host directory receiving exported artifacts (default: artifacts)
    LOG_DIR                       — Directory for dated log files (default: logs)
    LOG_LEVEL                     — Root log level name (default: INFO)

Attachment Policy:
    GOBUILD_REQUIRE_DOCKER=false keeps the degraded mode: when the docker
    sidecar endpoint cannot be resolved the operation continues without it
    and nested container commands fail later. Set it to true to fail fast.
"""
import os
from dotenv import load_dotenv

load_dotenv()

DEFAULT_GO_VERSION = os.getenv("GOBUILD_GO_VERSION", "1.23.4")
DEFAULT_DOCKER_VERSION = os.getenv("GOBUILD_DOCKER_VERSION", "24.0")

DEFAULT_BASE_IMAGE = os.getenv("GOBUILD_BASE_IMAGE", "ubuntu:latest")
LINT_IMAGE = os.getenv("GOBUILD_LINT_IMAGE", "golangci/golangci-lint:latest")
GIT_IMAGE = os.getenv("GOBUILD_GIT_IMAGE", "alpine/git:latest")
TAR_IMAGE = os.getenv("GOBUILD_TAR_IMAGE", "alpine:3.18")

REQUIRE_DOCKER = os.getenv("GOBUILD_REQUIRE_DOCKER", "false").lower() == "true"

# Engine tuning
SERVICE_START_TIMEOUT = float(os.getenv("GOBUILD_SERVICE_START_TIMEOUT", 30))
MAX_WORKERS = int(os.getenv("GOBUILD_MAX_WORKERS", 8))
NETWORK_PREFIX = os.getenv("GOBUILD_NETWORK_PREFIX", "gobuild")

ARTIFACT_ROOT = os.getenv("GOBUILD_ARTIFACT_ROOT", "artifacts")
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
