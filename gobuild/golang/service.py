"""
Docker-in-Docker Service
========================
Descriptor of the dockerd sidecar that lets build containers run containers.

Construction is pure: nothing starts until an engine resolves the endpoint.
The daemon data directory lives in a private cache keyed by the docker
version, so every session using the same version reuses one volume.
"""
from gobuild.core.config import DEFAULT_DOCKER_VERSION
from gobuild.core.constants import DOCKER_LIB_CACHE_SUFFIX, DOCKERD_DATA_DIR, DOCKERD_PORT
from gobuild.engine.container import CacheSharingMode, CacheVolume, Service, from_image


def docker_service(docker_version: str = DEFAULT_DOCKER_VERSION) -> Service:
    return (
        from_image(f"docker:{docker_version}-dind")
        .with_mounted_cache(
            DOCKERD_DATA_DIR,
            CacheVolume(docker_version + DOCKER_LIB_CACHE_SUFFIX),
            sharing=CacheSharingMode.PRIVATE,
        )
        .with_exposed_port(DOCKERD_PORT)
        .with_exec(
            [
                "dockerd",
                f"--host=tcp://0.0.0.0:{DOCKERD_PORT}",
                "--host=unix:///var/run/docker.sock",
                "--tls=false",
            ],
            insecure_root_capabilities=True,
        )
        .as_service()
    )
