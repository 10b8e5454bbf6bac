"""
Image Transport

Downloads and copies container images with external CLI tools
(container-diff for analysis, skopeo for copying), authenticating against
a ranked list of registry credentials.

Each attempt writes a throwaway Docker config holding only the credentials
of that attempt and points the tools at it via DOCKER_CONFIG or, for
copies, separate --src-authfile / --dest-authfile files.
"""

import base64
import json
import logging
import os
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

from skill_registration.core.config import settings
from skill_registration.core.exceptions import ImageTransportError
from skill_registration.schemas.events import DockerImage, DockerRegistry, DockerRegistryType

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Docker credential helpers used for registries that carry no static secret
CREDENTIAL_HELPERS = {
    DockerRegistryType.GCR: "gcloud",
    DockerRegistryType.ECR: "ecr-login",
}

DOCKER_HUB_AUTH_KEYS = ("https://index.docker.io/v1/", "docker.io")

# Registry username that accompanies a gcloud access token
ACCESS_TOKEN_USERNAME = "oauth2accesstoken"


def registry_matches_host(registry: DockerRegistry, host: str) -> bool:
    """Whether the registry type belongs to the host family of `host`."""
    if registry.type == DockerRegistryType.ECR:
        return ".ecr." in host
    if registry.type == DockerRegistryType.GCR:
        return "gcr.io" in host
    if registry.type == DockerRegistryType.GHCR:
        return "ghcr.io" in host
    if registry.type == DockerRegistryType.DOCKER_HUB:
        return host == "hub.docker.com"
    return False


def rank_registries(registries: List[DockerRegistry], host: str) -> List[DockerRegistry]:
    """
    Order credential candidates for an image host.

    Registries whose type matches the host family sort first; the sort is
    stable so ties keep their input order.
    """
    return sorted(registries, key=lambda r: 0 if registry_matches_host(r, host) else 1)


def _server_key(server_url: str) -> str:
    key = server_url.strip()
    for scheme in ("https://", "http://"):
        if key.startswith(scheme):
            key = key[len(scheme):]
    return key.rstrip("/")


def docker_config(registries: List[DockerRegistry]) -> Dict[str, Dict[str, object]]:
    """
    Build a Docker config.json document for the given credentials.

    Registries with a username and secret become static `auths` entries;
    GCR and ECR registries without a secret are delegated to their
    credential helper.
    """
    auths: Dict[str, object] = {}
    helpers: Dict[str, object] = {}
    for registry in registries:
        server = _server_key(registry.server_url)
        if registry.username and registry.secret:
            token = base64.b64encode(f"{registry.username}:{registry.secret}".encode()).decode()
            keys = DOCKER_HUB_AUTH_KEYS if registry.type == DockerRegistryType.DOCKER_HUB else (server,)
            for key in keys:
                auths[key] = {"auth": token}
        elif registry.type in CREDENTIAL_HELPERS:
            helpers[server] = CREDENTIAL_HELPERS[registry.type]
        else:
            logger.debug(f"Registry {registry.id} has no usable credential, skipping")
    config: Dict[str, Dict[str, object]] = {"auths": auths}
    if helpers:
        config["credHelpers"] = helpers
    return config


@contextmanager
def registry_session(registries: List[DockerRegistry]) -> Iterator[Dict[str, str]]:
    """
    Yield a process environment authenticated for `registries`.

    The config directory is removed when the session ends, on success or failure.
    """
    with tempfile.TemporaryDirectory(prefix="registry-auth-") as config_dir:
        config_path = Path(config_dir) / "config.json"
        config_path.write_text(json.dumps(docker_config(registries)))
        env = dict(os.environ)
        env["DOCKER_CONFIG"] = config_dir
        env["REGISTRY_AUTH_FILE"] = str(config_path)
        accounts = [r.service_account for r in registries if r.service_account]
        if accounts:
            env["CLOUDSDK_CORE_ACCOUNT"] = accounts[0]
        yield env


class ImageTransport:
    """Runs image tools under registry authentication."""

    def __init__(
        self,
        analyze_command: Optional[str] = None,
        copy_command: Optional[str] = None,
        gcloud_command: Optional[str] = None,
    ):
        self.analyze_command = analyze_command or settings.IMAGE_ANALYZE_COMMAND
        self.copy_command = copy_command or settings.IMAGE_COPY_COMMAND
        self.gcloud_command = gcloud_command or settings.GCLOUD_COMMAND

    def run_authed(
        self,
        registries: List[DockerRegistry],
        operation: Callable[[Dict[str, str]], T],
    ) -> Tuple[T, Optional[DockerRegistry]]:
        """
        Run `operation` with one credential at a time until it succeeds.

        Args:
            registries: Ranked credential candidates
            operation: Callable receiving the authenticated environment

        Returns:
            Tuple of (operation result, registry that succeeded). The registry
            is None when there were no candidates and the operation ran
            anonymously.

        Raises:
            ImageTransportError: If every candidate failed
        """
        if not registries:
            with registry_session([]) as env:
                return operation(env), None

        last_error: Optional[ImageTransportError] = None
        for registry in registries:
            logger.info(f"Authenticating with registry {registry.id} ({registry.server_url})")
            with registry_session([registry]) as env:
                try:
                    return operation(env), registry
                except ImageTransportError as e:
                    logger.warning(f"Registry {registry.id} failed: {e}")
                    last_error = e

        raise ImageTransportError(
            last_error.step,
            f"no registry credential succeeded ({last_error.detail})",
        )

    def download_image(
        self,
        image: DockerImage,
        registries: List[DockerRegistry],
        scratch_dir: Path,
    ) -> Tuple[Path, Optional[DockerRegistry]]:
        """
        Extract the image filesystem into `scratch_dir`.

        Returns:
            Tuple of (extracted filesystem root, credential used)
        """
        ranked = rank_registries(registries, image.repository.host)
        image_ref = image.full_name

        def analyze(env: Dict[str, str]) -> Path:
            logger.info(f"Downloading image {image_ref}")
            env = {**env, "CONTAINER_DIFF_CACHEDIR": str(scratch_dir)}
            self._run(
                "Image download",
                [self.analyze_command, "analyze", "--type=file", image_ref],
                env,
            )
            logger.info("Successfully downloaded image")
            return scratch_dir / ".container-diff" / "cache" / image_cache_name(image_ref)

        return self.run_authed(ranked, analyze)

    def copy_image(
        self,
        source: str,
        destination: str,
        source_registry: Optional[DockerRegistry],
        destination_registry: DockerRegistry,
    ) -> None:
        """
        Copy `source` to `destination`.

        Each side gets its own auth file holding only its own credential, so
        a source and destination on the same host never share an identity.
        Service-account registries are resolved to access tokens up front.

        Raises:
            ImageTransportError: If a token cannot be minted or the copy fails
        """
        source_registries = [self.access_token_credential(source_registry)] if source_registry else []
        destination_registries = [self.access_token_credential(destination_registry)]

        with registry_session(source_registries) as src_env, \
                registry_session(destination_registries) as dest_env:
            logger.info(f"Copying image {source} to {destination}")
            self._run(
                "Image copy",
                [
                    self.copy_command,
                    "copy",
                    "--src-authfile",
                    src_env["REGISTRY_AUTH_FILE"],
                    "--dest-authfile",
                    dest_env["REGISTRY_AUTH_FILE"],
                    f"docker://{source}",
                    f"docker://{destination}",
                ],
                dest_env,
            )
            logger.info(f"Successfully copied image to {destination}")

    def access_token_credential(self, registry: DockerRegistry) -> DockerRegistry:
        """
        Static credential for a registry identified by a service account.

        Registries with a secret, or without a service account, are returned
        unchanged.
        """
        if registry.secret or not registry.service_account:
            return registry

        result = self._run(
            "Registry login",
            [
                self.gcloud_command,
                "auth",
                "print-access-token",
                f"--account={registry.service_account}",
            ],
            dict(os.environ),
        )
        logger.debug(f"Minted access token for {registry.service_account}")
        return registry.model_copy(
            update={"username": ACCESS_TOKEN_USERNAME, "secret": result.stdout.strip()}
        )

    def _run(self, step: str, cmd: List[str], env: Dict[str, str]) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(cmd, env=env, capture_output=True, text=True, check=False)
        except FileNotFoundError as e:
            raise ImageTransportError(step, f"{cmd[0]} is not installed") from e

        if result.returncode != 0:
            logger.error(f"{step} exited with {result.returncode}: {result.stderr.strip()}")
            raise ImageTransportError(step, f"{cmd[0]} exited with status {result.returncode}")
        return result


def image_cache_name(image_ref: str) -> str:
    """Directory name container-diff uses for a cached image."""
    return image_ref.replace("/", "").replace(":", "_")
