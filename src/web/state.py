import threading
import time
from typing import List

from models.detection import Detection


class SharedState:
    """
    Singleton class to share state between the detection loop
    and the web server.
    """
    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(SharedState, cls).__new__(cls)
                    cls._instance._reset()
        return cls._instance

    def _reset(self):
        self.controller = None
        self.detections_lock = threading.Lock()
        self.last_detections: List[Detection] = []
        self.system_stats = {
            "start_time": time.time(),
            "last_detection_ts": None,
        }

    def set_controller(self, controller):
        self.controller = controller

    def get_controller(self):
        return self.controller

    def set_detections(self, detections: List[Detection]):
        """Record the latest detections (camera or still image)."""
        with self.detections_lock:
            self.last_detections = list(detections)
            self.system_stats["last_detection_ts"] = time.time()

    def get_detections(self) -> List[Detection]:
        with self.detections_lock:
            return list(self.last_detections)

    def get_system_stats_copy(self):
        """Return a shallow copy of current system stats."""
        return dict(self.system_stats)

    def clear(self):
        """Drop all references (used between tests and on shutdown)."""
        self._reset()


# Global instance
state = SharedState()
