"""
This module provides the map functions used to distribute the assembly of
HEOM matrices: a serial map, and maps over a pool of threads or a pool of
processes built on the builtin module concurrent.futures. All of them share
the call signature::

    map_func(task, values, task_args=None, map_kw=None,
             progress_bar=None, progress_bar_kwargs=None)

and return ``[task(value, *task_args) for value in values]``.
"""
__all__ = ['parallel_map', 'thread_map', 'serial_map', 'get_map',
           'MapExceptions']

import multiprocessing
import sys
import time
import threading
import concurrent.futures
from qutip.ui.progressbar import progress_bars
from .settings import settings

if sys.platform in ('darwin', 'linux'):
    # the tasks only read their arguments, fork avoids pickling them again
    # for every worker
    mp_context = multiprocessing.get_context('fork')
else:
    mp_context = multiprocessing.get_context()


default_map_kw = {
    'timeout': threading.TIMEOUT_MAX,
    'num_cpus': None,
    'fail_fast': True,
}


def _read_map_kw(options):
    options = options or {}
    map_kw = default_map_kw.copy()
    map_kw.update({k: v for k, v in options.items() if v is not None})
    if map_kw['num_cpus'] is None:
        map_kw['num_cpus'] = settings.num_cpus
    return map_kw


class MapExceptions(Exception):
    """
    Raised by the map functions when ``fail_fast`` is off and at least one
    task failed.

    Attributes
    ----------
    errors : dict
        The exception raised by each failed task, keyed by the index of its
        value.
    results : list
        The results of the tasks, ``None`` for the failed ones.
    """
    def __init__(self, msg, errors, results):
        super().__init__(msg, errors, results)
        self.errors = errors
        self.results = results


def _raise_errors(errors, results, fail_fast, name):
    if not errors:
        return
    if fail_fast:
        raise errors[min(errors)]
    raise MapExceptions(
        f"{len(errors)} iterations failed in {name}", errors, results
    )


def serial_map(task, values, task_args=None, map_kw=None,
               progress_bar=None, progress_bar_kwargs=None):
    """
    Serial mapping function with the same call signature as
    :func:`parallel_map`, for easy switching between serial and parallel
    execution.

    Parameters
    ----------
    task : a Python function
        The function that is to be called for each value in ``values``.
    values : array / list
        The values for which the ``task`` function is to be evaluated.
    task_args : list, optional
        The optional additional arguments to the ``task`` function.
    map_kw : dict, optional
        Dictionary containing:
        - timeout: float, Maximum time (sec) for the whole map.
        - fail_fast: bool, Raise the first error instead of collecting
          them in a :class:`MapExceptions`.
    progress_bar : str, optional
        Progress bar options's string for showing progress.
    progress_bar_kwargs : dict, optional
        Options for the progress bar.

    Returns
    -------
    result : list
        The value of ``task(value, *task_args)`` for each value in
        ``values``.

    Raises
    ------
    TimeoutError
        If the map did not complete within ``map_kw["timeout"]`` seconds.
    """
    task_args = tuple(task_args or ())
    map_kw = _read_map_kw(map_kw)
    values = list(values)
    progress_bar = progress_bars[progress_bar](
        len(values), **(progress_bar_kwargs or {})
    )
    end_time = map_kw['timeout'] + time.time()
    results = [None] * len(values)
    errors = {}
    timed_out = False
    for n, value in enumerate(values):
        if time.time() > end_time:
            timed_out = True
            break
        try:
            results[n] = task(value, *task_args)
        except Exception as err:
            if map_kw['fail_fast']:
                raise err
            errors[n] = err
        progress_bar.update()
    progress_bar.finished()

    _raise_errors(errors, results, map_kw['fail_fast'], "serial_map")
    if timed_out:
        raise TimeoutError(
            f"serial_map did not complete within {map_kw['timeout']} seconds"
        )
    return results


def _pool_map(executor, task, values, task_args, map_kw,
              progress_bar, progress_bar_kwargs, name):
    """
    Submit every value to ``executor`` and collect the results in the order
    of ``values``. Tasks still waiting when the map fails or times out are
    cancelled, running ones are waited for when the executor shuts down.
    """
    task_args = tuple(task_args or ())
    values = list(values)
    progress_bar = progress_bars[progress_bar](
        len(values), **(progress_bar_kwargs or {})
    )

    def _done_callback(future):
        if not future.cancelled():
            progress_bar.update()

    if map_kw['fail_fast']:
        return_when = concurrent.futures.FIRST_EXCEPTION
    else:
        return_when = concurrent.futures.ALL_COMPLETED

    with executor:
        futures = []
        for value in values:
            future = executor.submit(task, value, *task_args)
            future.add_done_callback(_done_callback)
            futures.append(future)
        _, pending = concurrent.futures.wait(
            futures, timeout=map_kw['timeout'], return_when=return_when,
        )
        for future in pending:
            future.cancel()
    progress_bar.finished()

    results = [None] * len(values)
    errors = {}
    for n, future in enumerate(futures):
        if future.cancelled():
            continue
        err = future.exception()
        if err is not None:
            errors[n] = err
        else:
            results[n] = future.result()

    _raise_errors(errors, results, map_kw['fail_fast'], name)
    if pending:
        raise TimeoutError(
            f"{name} did not complete within {map_kw['timeout']} seconds"
        )
    return results


def parallel_map(task, values, task_args=None, map_kw=None,
                 progress_bar=None, progress_bar_kwargs=None):
    """
    Parallel execution of a mapping of ``values`` to the function ``task``
    on a pool of worker processes.

    ``task``, its arguments and its results must be picklable. The
    parameters, return value and errors are those of :func:`serial_map`,
    with ``map_kw["num_cpus"]`` the number of worker processes.
    """
    map_kw = _read_map_kw(map_kw)
    executor = concurrent.futures.ProcessPoolExecutor(
        max_workers=map_kw['num_cpus'], mp_context=mp_context,
    )
    return _pool_map(
        executor, task, values, task_args, map_kw,
        progress_bar, progress_bar_kwargs, "parallel_map",
    )


def thread_map(task, values, task_args=None, map_kw=None,
               progress_bar=None, progress_bar_kwargs=None):
    """
    Parallel execution of a mapping of ``values`` to the function ``task``
    on a pool of threads.

    The workers share the memory of the calling process, which suits tasks
    that spend most of their time in numpy and scipy routines. The
    parameters, return value and errors are those of :func:`serial_map`,
    with ``map_kw["num_cpus"]`` the number of threads.
    """
    map_kw = _read_map_kw(map_kw)
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=map_kw['num_cpus'],
    )
    return _pool_map(
        executor, task, values, task_args, map_kw,
        progress_bar, progress_bar_kwargs, "thread_map",
    )


_maps = {
    "parallel_map": parallel_map,
    "parallel": parallel_map,
    "thread_map": thread_map,
    "thread": thread_map,
    "serial_map": serial_map,
    "serial": serial_map,
}


def get_map(name):
    """
    Return the map function registered under ``name``, one of
    ``"serial"``, ``"thread"`` or ``"parallel"``.
    """
    try:
        return _maps[name]
    except KeyError:
        raise ValueError(
            f"Unknown map {name!r}, available maps are"
            f" {sorted(set(_maps))}"
        ) from None
