"""
Progress accumulator for one sync run
"""
import threading

MB = 1024 * 1024


class SyncProgress:
    """
    Files and bytes done out of the totals planned before the first transfer.
    File and byte completion are tracked separately; with uneven file sizes
    they diverge and both are reported.
    """

    def __init__(self, total_files: int = 0, total_bytes: int = 0):
        self.total_files = total_files
        self.total_bytes = total_bytes
        self.files_done = 0
        self.bytes_done = 0
        self.failed = 0
        self._lock = threading.Lock()

    def advance(self, action):
        with self._lock:
            self.files_done += 1
            self.bytes_done += action.size_bytes

    def record_failure(self):
        with self._lock:
            self.failed += 1

    @property
    def file_percent(self) -> float:
        if self.total_files == 0:
            return 100.0
        return 100.0 * self.files_done / self.total_files

    @property
    def byte_percent(self) -> float:
        if self.total_bytes == 0:
            return 100.0
        return 100.0 * self.bytes_done / self.total_bytes

    @property
    def complete(self) -> bool:
        return self.files_done == self.total_files and self.bytes_done == self.total_bytes

    def lines(self) -> tuple:
        return (
            f"Progress: {self.files_done}/{self.total_files} files synced "
            f"({self.file_percent:.1f}%)",
            f"Data: {self.bytes_done / MB:.2f}/{self.total_bytes / MB:.2f} MB synced "
            f"({self.byte_percent:.1f}%)",
        )
