"""
Remote folder resolution - logical folder path to remote folder id.

Look-up first, create only when the look-up fails, so repeated runs never
duplicate folders. Resolved ids are cached for the lifetime of the
resolver (one migration run).
"""
import logging
from typing import Dict, Optional

from ..errors import (
    FolderResolutionError,
    InvalidResourceReference,
    RequestTimeoutError,
    TransientNetworkError,
)
from ..protocols import ICLMClient, IDiagnosticLog
from ..utils.hrefs import href_from_response
from ..utils.retry import RetryPolicy, Sleeper
from . import diagnostics as channels

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_CREATED = 201


def _normalize(logical_path: str) -> str:
    return logical_path.rstrip("/") or "/"


class RemoteFolderResolver:
    """
    Maps logical folder paths to remote folder ids, creating folders on demand.

    Not safe for concurrent calls on the same unseen path: callers resolve
    folders sequentially (the orchestrator's folder loop does).
    """

    def __init__(
        self,
        client: ICLMClient,
        diagnostics: IDiagnosticLog,
        policy: RetryPolicy,
        sleep: Optional[Sleeper] = None,
    ):
        self._client = client
        self._diagnostics = diagnostics
        self._policy = policy
        self._sleep = sleep
        self._folder_cache: Dict[str, str] = {}

    @property
    def cached(self) -> Dict[str, str]:
        return dict(self._folder_cache)

    async def resolve(self, logical_path: str, parent_folder_id: str) -> str:
        """
        Return the remote id of `logical_path`, creating it under
        `parent_folder_id` when the look-up fails.

        Raises:
            FolderResolutionError: every attempt failed.
            RequestTimeoutError: a request exceeded its deadline.
        """
        key = _normalize(logical_path)
        if key in self._folder_cache:
            logger.debug(f"Folder found in cache: {key}")
            return self._folder_cache[key]

        name = key.rsplit("/", 1)[-1]
        state = self._policy.start()
        last_status: Optional[int] = None

        while not state.exhausted:
            try:
                response = await self._client.get_folder_by_path(key)
                if response.status_code == HTTP_OK:
                    folder_id = href_from_response(response)
                    logger.debug(f"Folder already exists: {key} (id: {folder_id})")
                    self._folder_cache[key] = folder_id
                    return folder_id

                response = await self._client.create_folder(name, parent_folder_id)
                last_status = response.status_code
                if response.status_code == HTTP_CREATED:
                    folder_id = href_from_response(response)
                    logger.info(f"Folder created: {key} (id: {folder_id})")
                    self._folder_cache[key] = folder_id
                    return folder_id

                error = f"create folder returned status {last_status}"
            except RequestTimeoutError as exc:
                logger.error(f"Folder request timed out: {key}")
                self._diagnostics.write(
                    channels.FOLDER_ERRORS,
                    f"PATH: {key}\nERROR: {exc}\nAttempt: {state.attempt + 1}\n",
                )
                raise
            except (TransientNetworkError, InvalidResourceReference, ValueError) as exc:
                last_status = getattr(exc, "status", None) or last_status
                error = str(exc)

            delay = state.record_failure()
            retry_note = "" if state.exhausted else f", retrying in {delay:.0f}s"
            logger.warning(
                f"Folder {key} failed: {error} "
                f"(attempt {state.attempt}/{state.max_attempts}{retry_note})"
            )
            self._diagnostics.write(
                channels.FOLDER_ERRORS,
                f"PATH: {key}\nERROR: {error}\nAttempt: {state.attempt}\n",
            )
            await state.wait(delay, self._sleep)

        logger.error(f"Giving up on folder {key} after {state.attempt} attempts")
        raise FolderResolutionError(key, state.attempt, last_status)
