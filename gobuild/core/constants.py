"""
Constants
Fixed paths, ports and cache names shared by every build container.
"""
PROJ_MOUNT = "/src"
OUT_DIR = "/out/"
INSTALL_DIR = "/usr/local/bin/"
REMOTE_BUILD_DIR = "build/"

# Go caches (names are shared across sessions and Go versions)
GOMODCACHE_NAME = "gomodcache"
GOMODCACHE_PATH = "/go/pkg/mod"
GOBUILDCACHE_NAME = "gobuildcache"
GOBUILDCACHE_PATH = "/root/.cache/go-build"

# Docker-in-Docker sidecar
DOCKERD_PORT = 2375
DOCKERD_DATA_DIR = "/var/lib/docker"
DOCKER_SERVICE_ALIAS = "docker"
DOCKER_LIB_CACHE_SUFFIX = "-docker-lib"

VULNCHECK_PACKAGE = "golang.org/x/vuln/cmd/govulncheck@latest"
