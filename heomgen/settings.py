"""
This module contains the settings for heomgen: the number of workers used
when assembling HEOM matrices and the logging configuration.
"""
import os
import multiprocessing

__all__ = ['settings', 'available_cpu_count']


def available_cpu_count() -> int:
    """
    Get the number of cpus.
    It tries to only get the number available to heomgen.
    """
    num_cpu = 0

    if 'HEOMGEN_NUM_PROCESSES' in os.environ:
        # We consider HEOMGEN_NUM_PROCESSES=0 as unset.
        num_cpu = int(os.environ['HEOMGEN_NUM_PROCESSES'])

    if num_cpu == 0 and 'SLURM_CPUS_PER_TASK' in os.environ:
        num_cpu = int(os.environ['SLURM_CPUS_PER_TASK'])

    if num_cpu == 0 and hasattr(os, 'sched_getaffinity'):
        num_cpu = len(os.sched_getaffinity(0))

    if num_cpu == 0:
        try:
            num_cpu = multiprocessing.cpu_count()
        except NotImplementedError:
            pass

    return num_cpu or 1


class Settings:
    """
    heomgen's settings.
    """
    _log_handlers = ("default", "basic", "stream", "null")

    def __init__(self):
        self._debug = os.environ.get(
            "HEOMGEN_DEBUG", ""
        ).lower() not in {"", "0", "false", "none"}
        self._log_handler = "default"
        self._num_cpus = None

    @property
    def debug(self) -> bool:
        """ Whether loggers created by heomgen log at the DEBUG level. """
        return self._debug

    @debug.setter
    def debug(self, value: bool) -> None:
        self._debug = bool(value)

    @property
    def log_handler(self) -> str:
        """
        Handler policy used by :func:`heomgen.logging_utils.get_logger`.
        One of "default", "basic", "stream" or "null".
        """
        return self._log_handler

    @log_handler.setter
    def log_handler(self, value: str) -> None:
        if value not in self._log_handlers:
            raise ValueError(
                f"log_handler must be one of {self._log_handlers},"
                f" not {value!r}"
            )
        self._log_handler = value

    @property
    def ipython(self) -> bool:
        """ Whether heomgen is running in ipython. """
        try:
            __IPYTHON__
            return True
        except NameError:
            return False

    @property
    def num_cpus(self) -> int:
        """
        Number of cpu detected.
        Use the matrix construction options to control the number of workers
        used for a single assembly.
        """
        if self._num_cpus is None:
            self._num_cpus = available_cpu_count()
        return self._num_cpus

    @num_cpus.setter
    def num_cpus(self, value: int) -> None:
        if value is not None and int(value) < 1:
            raise ValueError("num_cpus must be a positive integer")
        self._num_cpus = None if value is None else int(value)

    def __str__(self) -> str:
        lines = ["heomgen settings:"]
        for attr in ["debug", "log_handler", "ipython", "num_cpus"]:
            lines.append(f"    {attr}: {getattr(self, attr)}")
        return '\n'.join(lines)

    def __repr__(self) -> str:
        return self.__str__()


settings = Settings()
