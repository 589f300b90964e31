from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterator, Optional, Tuple

from .config import AppConfig
from .errors import ValidationError
from .ingest.policy import validate_source_url
from .pipeline import ConversionJob, ConversionPipeline
from .progress import ChannelClosed, Complete, ProgressChannel, ProgressEvent
from .sessions import SessionRegistry

logger = logging.getLogger(__name__)


def iter_events(
    channel: ProgressChannel,
    *,
    should_stop: Optional[Callable[[], bool]] = None,
    poll_interval: float = 0.5,
) -> Iterator[ProgressEvent]:
    """Yield events until ``Complete``, channel close, or ``should_stop()``.

    ``should_stop`` is checked between waits; it ends this reader only and
    never touches the session.
    """
    while True:
        if should_stop is not None and should_stop():
            return
        try:
            event = channel.get(timeout=poll_interval)
        except ChannelClosed:
            return
        if event is None:
            continue
        yield event
        if isinstance(event, Complete):
            return


class JobManager:
    """Starts conversions in the background and hands out their progress.

    ``submit`` registers a session and returns at once; the pipeline runs on
    a daemon thread that removes the session again when it ends.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        registry: Optional[SessionRegistry] = None,
        pipeline: Optional[ConversionPipeline] = None,
    ) -> None:
        self.config = config
        self.registry = registry or SessionRegistry()
        self.pipeline = pipeline or ConversionPipeline(config)
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def submit(self, url: str, normalize: bool = False) -> str:
        """Validate ``url`` and start a conversion for it.

        Raises:
            ValidationError: nothing is registered or started in that case.
        """
        session_id, _ = self.start(url, normalize=normalize)
        return session_id

    def start(self, url: str, normalize: bool = False) -> Tuple[str, ProgressChannel]:
        """Like ``submit`` but also returns the channel, attached before the job runs."""
        try:
            url = validate_source_url(url, self.config.allowed_hosts)
        except ValidationError as e:
            logger.info("Rejected submission %r: %s", url, e)
            raise

        session_id, channel = self.registry.create()
        job = ConversionJob(session_id=session_id, url=url, normalize=normalize)

        t = threading.Thread(
            target=self._run,
            args=(job, channel),
            name=f"tubecast-job-{session_id[:8]}",
            daemon=True,
        )
        with self._lock:
            self._threads[session_id] = t
        try:
            t.start()
        except BaseException:
            # _run never ran, so its cleanup has to happen here
            with self._lock:
                self._threads.pop(session_id, None)
            self.registry.remove(session_id)
            logger.error("Could not start job %s for %s", session_id, url)
            raise
        logger.info("Started job %s for %s (normalize=%s)", session_id, url, normalize)
        return session_id, channel

    def _run(self, job: ConversionJob, channel: ProgressChannel) -> None:
        try:
            self.pipeline.run(job, channel.put)
        finally:
            # Once a job has started, this is the only place its session is removed.
            self.registry.remove(job.session_id)
            with self._lock:
                self._threads.pop(job.session_id, None)
            logger.info("Job %s finished: %s", job.session_id, job.stage.value if job.stage else "unknown")

    def open_channel(self, session_id: str) -> ProgressChannel:
        """Raises ``SessionNotFound`` for unknown or finished sessions."""
        return self.registry.get(session_id)

    def stream(
        self,
        session_id: str,
        *,
        should_stop: Optional[Callable[[], bool]] = None,
        poll_interval: float = 0.5,
    ) -> Iterator[ProgressEvent]:
        """Progress events for a live session.

        Raises:
            SessionNotFound: immediately, before any event is produced.
        """
        channel = self.open_channel(session_id)
        return iter_events(channel, should_stop=should_stop, poll_interval=poll_interval)

    def running(self) -> int:
        with self._lock:
            return len(self._threads)

    def wait(self, session_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the job's thread exits. True if it is no longer running."""
        with self._lock:
            t = self._threads.get(session_id)
        if t is None:
            return True
        t.join(timeout)
        return not t.is_alive()
