"""Polling dispatcher: find queued images and process them one at a time.

A Dispatcher owns a daemon thread that ticks every ``interval`` seconds.
Each tick asks ``find_next()`` for one queued job id and, if there is one,
calls ``process(job_id)`` and waits for it before the next discovery, so a
single instance never has two processing calls in flight.

``stop()`` cancels the loop; results of a tick that was in flight at that
moment are dropped instead of being reported.
"""
import logging
import threading

import httpx

from toonify.errors import ToonifyError
from toonify.handlers.processing import process_image
from toonify.models.image_job import ImageJob
from toonify.services import job_store

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, find_next, process, interval=5.0, on_change=None):
        self.interval = interval
        self.last_result = None
        self._find_next = find_next
        self._process = process
        self._on_change = on_change
        self._stopped = threading.Event()
        self._in_flight = threading.Lock()
        self._processing = False
        self._thread = None

    @property
    def is_processing(self):
        return self._processing

    @property
    def active(self):
        return not self._stopped.is_set()

    def _notify(self, processing):
        if self._on_change is None or not self.active:
            return
        try:
            self._on_change(processing)
        except Exception:
            logger.exception("Dispatcher state listener failed")

    def tick(self):
        """Run one discovery and, if a job is queued, process it.

        Returns the processing result, or None when nothing ran or the
        dispatcher was stopped meanwhile.
        """
        if not self.active:
            return None
        if not self._in_flight.acquire(blocking=False):
            return None
        try:
            try:
                job_id = self._find_next()
            except Exception:
                logger.exception("Error checking for images to process")
                return None
            if not job_id or not self.active:
                return None

            self._processing = True
            self._notify(True)
            try:
                result = self._process(job_id)
            except Exception as e:
                logger.exception("Processing error for image %s", job_id)
                result = {"error": str(e)}
            finally:
                self._processing = False

            if not self.active:
                return None
            self.last_result = result
            self._notify(False)
            return result
        finally:
            self._in_flight.release()

    def _run(self):
        while self.active:
            self.tick()
            self._stopped.wait(self.interval)

    def start(self):
        if not self.active:
            raise RuntimeError("Dispatcher was stopped; create a new one")
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(
                target=self._run, name="toonify-dispatcher", daemon=True
            )
            self._thread.start()
        return self

    def stop(self, timeout=None):
        """Cancel the loop. With ``timeout`` set, also wait for the thread."""
        self._stopped.set()
        thread = self._thread
        if timeout is not None and thread and thread is not threading.current_thread():
            thread.join(timeout)


def local_callables(app):
    """Discovery and processing against this app's database, in-process."""

    def find_next():
        with app.app_context():
            jobs = job_store.list_by_status(ImageJob.IN_QUEUE, limit=1)
            return jobs[0].id if jobs else None

    def process(job_id):
        with app.app_context():
            try:
                return process_image(job_id)
            except ToonifyError as e:
                return {"error": e.message}

    return find_next, process


def http_callables(api_url, token, timeout=300.0, transport=None):
    """Discovery and processing through the HTTP API, as the caller ``token``."""
    client = httpx.Client(
        base_url=api_url.rstrip("/"),
        headers={"Authorization": f"Bearer {token}"},
        timeout=timeout,
        transport=transport,
    )

    def find_next():
        resp = client.get(
            "/api/images", params={"status": ImageJob.IN_QUEUE, "limit": 1}
        )
        resp.raise_for_status()
        images = resp.json().get("images", [])
        return images[0]["id"] if images else None

    def process(job_id):
        resp = client.post("/functions/v1/process-image", json={"imageId": job_id})
        result = resp.json()
        if resp.is_error:
            logger.error("Processing error: %s", result.get("error"))
        return result

    return find_next, process
