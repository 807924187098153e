import threading
from concurrent.futures import Future
from queue import Queue
import numpy as np
from utils.logger import get_logger


class LaneWorker:
    """One worker thread per lane; frames from the same lane run in arrival order."""

    def __init__(self, name: str, pipeline):
        self.logger = get_logger(__name__)
        self.name = name
        self.pipeline = pipeline
        self.frame_queue = Queue()
        self._closed = False
        self._submit_lock = threading.Lock()
        self._start_worker_thread()

    def _start_worker_thread(self):
        self.worker_thread = threading.Thread(
            target=self._lane_worker, name=f"lane-{self.name}", daemon=True)
        self.worker_thread.start()

    def _lane_worker(self):
        while True:
            task = self.frame_queue.get()
            if task is None:
                self.logger.info(f"Shutting down lane {self.name} worker thread.")
                self.frame_queue.task_done()
                break

            kind, payload, future = task
            if future.set_running_or_notify_cancel():
                try:
                    if kind == "frame":
                        future.set_result(self.pipeline.process_frame(payload))
                    else:
                        future.set_result(self.pipeline.process_rfid(payload))
                except Exception as e:
                    self.logger.error(f"Lane {self.name} worker error: {e}", exc_info=True)
                    future.set_exception(e)
            self.frame_queue.task_done()

    def _enqueue(self, kind: str, payload) -> Future:
        future = Future()
        with self._submit_lock:
            if self._closed:
                raise RuntimeError(f"Lane {self.name} is shut down")
            self.frame_queue.put((kind, payload, future))
        return future

    def submit(self, frame: np.ndarray) -> Future:
        return self._enqueue("frame", frame)

    def submit_rfid(self, tag: str) -> Future:
        return self._enqueue("rfid", tag)

    def shutdown(self, wait: bool = True):
        """Stop accepting events; queued and in-flight events still complete."""
        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
            self.frame_queue.put(None)
        if wait:
            self.worker_thread.join()
