import logging
import subprocess
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from skill_registration.core.config import settings
from skill_registration.core.exceptions import SourceControlError

logger = logging.getLogger(__name__)

# GitHub API constants
DEFAULT_TIMEOUT_SECONDS = 10.0
TAGS_PER_PAGE = 100
MAX_TAG_PAGES = 50
MAX_RETRIES = 3
BACKOFF_FACTOR = 2

# Check run reported on the commit for every registration
CHECK_RUN_NAME = "register-skill"
CHECK_RUN_TITLE = "Skill Registration"


class GitHubService:
    """
    Source-control collaborator for one repository owner's installation.

    Features:
    - Paginated tag listing with retries and exponential backoff
    - Tag lookup and creation (annotated tag object + ref)
    - Check runs reporting the registration outcome on the commit
    - Detached clone of a repository at a commit via the git CLI
    """

    def __init__(
        self,
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        git_command: Optional[str] = None,
    ):
        self.token = token or settings.GITHUB_TOKEN
        self.git_command = git_command or settings.GIT_COMMAND
        self._client = client or httpx.Client(
            base_url=settings.GITHUB_API_URL,
            timeout=httpx.Timeout(DEFAULT_TIMEOUT_SECONDS),
        )

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "Skill-Registration/1.0",
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _get_with_retry(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """
        GET with retry on timeouts and 5xx responses.

        Returns:
            The final response; 4xx responses are returned without retrying.

        Raises:
            SourceControlError: If all attempts failed
        """
        last_error = "no response"
        for attempt in range(MAX_RETRIES):
            try:
                response = self._client.get(url, params=params, headers=self._get_headers())
                if response.status_code < 500:
                    return response
                last_error = f"HTTP {response.status_code}"
                logger.warning(f"GitHub API error for {url}: {last_error} (attempt {attempt + 1})")
            except httpx.TimeoutException:
                last_error = "timeout"
                logger.warning(f"Timeout fetching {url} (attempt {attempt + 1})")
            except httpx.RequestError as e:
                last_error = str(e)
                logger.warning(f"Error fetching {url}: {e} (attempt {attempt + 1})")

            # Exponential backoff for retries
            if attempt < MAX_RETRIES - 1:
                wait_time = BACKOFF_FACTOR ** attempt
                logger.debug(f"Retrying in {wait_time} seconds...")
                time.sleep(wait_time)

        logger.error(f"Failed to fetch {url} after {MAX_RETRIES} attempts")
        raise SourceControlError("GitHub request", f"GET {url}: {last_error}")

    def list_tags(self, owner: str, repo: str) -> List[str]:
        """
        List all tag names of a repository.

        Args:
            owner: Repository owner/organization
            repo: Repository name

        Returns:
            Tag names in the order GitHub returns them
        """
        tags: List[str] = []
        url = f"/repos/{owner}/{repo}/tags"
        for page in range(1, MAX_TAG_PAGES + 1):
            response = self._get_with_retry(url, params={"per_page": TAGS_PER_PAGE, "page": page})
            if response.status_code == 404:
                logger.info(f"Repository {owner}/{repo} not found or private")
                break
            if response.status_code >= 400:
                raise SourceControlError(
                    "GitHub tag listing",
                    f"{owner}/{repo} returned HTTP {response.status_code}",
                )
            data = response.json()
            tags.extend(t["name"] for t in data)
            if len(data) < TAGS_PER_PAGE:
                break
        else:
            logger.warning(
                f"Stopped listing tags of {owner}/{repo} after {MAX_TAG_PAGES} pages; "
                f"later tags are not considered"
            )
        logger.debug(f"Found {len(tags)} tags on {owner}/{repo}")
        return tags

    def get_ref(self, owner: str, repo: str, ref: str) -> Optional[Dict[str, Any]]:
        """
        Look up a git reference such as `tags/1.0.0`.

        Returns:
            The ref object, or None if it does not exist
        """
        response = self._get_with_retry(f"/repos/{owner}/{repo}/git/ref/{ref}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise SourceControlError(
                "GitHub ref lookup",
                f"{owner}/{repo} {ref} returned HTTP {response.status_code}",
            )
        return response.json()

    def create_tag_object(self, owner: str, repo: str, tag: str, sha: str, message: str) -> str:
        """
        Create an annotated tag object for a commit.

        Returns:
            SHA of the new tag object
        """
        payload = {
            "tag": tag,
            "object": sha,
            "type": "commit",
            "message": message,
            "tagger": {
                "name": settings.TAGGER_NAME,
                "email": settings.TAGGER_EMAIL,
                "date": datetime.now(timezone.utc).isoformat(),
            },
        }
        response = self._post(f"/repos/{owner}/{repo}/git/tags", payload)
        return response.json().get("sha")

    def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> Dict[str, Any]:
        """Create `ref` (fully qualified, e.g. refs/tags/1.0.0) pointing at `sha`."""
        response = self._post(f"/repos/{owner}/{repo}/git/refs", {"ref": ref, "sha": sha})
        return response.json()

    def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        return self._write("POST", self._client.post, url, payload)

    def _patch(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        return self._write("PATCH", self._client.patch, url, payload)

    def _write(self, method: str, send, url: str, payload: Dict[str, Any]) -> httpx.Response:
        try:
            response = send(url, json=payload, headers=self._get_headers())
        except httpx.RequestError as e:
            raise SourceControlError("GitHub request", f"{method} {url}: {e}") from e
        if response.status_code not in (200, 201):
            logger.error(f"GitHub API error for {method} {url}: {response.status_code} - {response.text}")
            raise SourceControlError("GitHub request", f"{method} {url}: HTTP {response.status_code}")
        return response

    def create_check_run(self, owner: str, repo: str, sha: str, summary: str) -> int:
        """
        Open an in-progress check run on a commit.

        Returns:
            ID of the new check run
        """
        payload = {
            "name": CHECK_RUN_NAME,
            "head_sha": sha,
            "status": "in_progress",
            "started_at": datetime.now(timezone.utc).isoformat(),
            "output": {"title": CHECK_RUN_TITLE, "summary": summary},
        }
        response = self._post(f"/repos/{owner}/{repo}/check-runs", payload)
        return response.json().get("id")

    def update_check_run(self, owner: str, repo: str, check_run_id: int, conclusion: str, summary: str) -> None:
        """Complete a check run with `conclusion` ("success" or "failure")."""
        payload = {
            "status": "completed",
            "conclusion": conclusion,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "output": {"title": CHECK_RUN_TITLE, "summary": summary},
        }
        self._patch(f"/repos/{owner}/{repo}/check-runs/{check_run_id}", payload)

    def ensure_tag(self, owner: str, repo: str, version: str, sha: str) -> bool:
        """
        Make sure tag `version` exists, creating it at `sha` when missing.

        Failures are logged and swallowed: a concurrent registration of the
        same version may have created the tag first.

        Returns:
            True if the tag was created by this call
        """
        try:
            if self.get_ref(owner, repo, f"tags/{version}") is not None:
                logger.info(f"Tag {version} already exists on {owner}/{repo}")
                return False
            self.create_tag_object(owner, repo, version, sha, f"v{version}")
            self.create_ref(owner, repo, f"refs/tags/{version}", sha)
            logger.info(f"Created tag {version} on {owner}/{repo} at {sha}")
            return True
        except SourceControlError as e:
            logger.warning(f"Failed to create tag {version} on {owner}/{repo}: {e}")
            return False

    def clone_at_commit(self, owner: str, repo: str, sha: str, target: Path) -> Path:
        """
        Clone a repository and check out `sha` as a detached HEAD.

        Raises:
            SourceControlError: If either git command fails
        """
        base = settings.GITHUB_URL.rstrip("/")
        scheme, _, host = base.partition("://")
        if self.token:
            url = f"{scheme}://x-access-token:{self.token}@{host}/{owner}/{repo}.git"
        else:
            url = f"{base}/{owner}/{repo}.git"

        logger.info(f"Cloning {owner}/{repo} at {sha}")
        self._git(["clone", "--quiet", url, str(target)], f"clone {owner}/{repo}")
        self._git(["-C", str(target), "checkout", "--quiet", "--detach", sha], f"checkout {sha}")
        return target

    def _git(self, args: List[str], description: str) -> None:
        try:
            result = subprocess.run(
                [self.git_command, *args],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise SourceControlError("Repository clone", f"{self.git_command} is not installed") from e
        if result.returncode != 0:
            # stderr may echo the remote URL; never log the token
            stderr = result.stderr.strip()
            if self.token:
                stderr = stderr.replace(self.token, "***")
            logger.error(f"git {description} failed: {stderr}")
            raise SourceControlError("Repository clone", f"git {description} exited with status {result.returncode}")

    def close(self) -> None:
        self._client.close()
