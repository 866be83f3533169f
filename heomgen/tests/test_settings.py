import logging

import pytest

import heomgen
from heomgen.logging_utils import get_logger
from heomgen.settings import Settings, available_cpu_count


@pytest.fixture
def clean_env(monkeypatch):
    for var in ["HEOMGEN_NUM_PROCESSES", "SLURM_CPUS_PER_TASK"]:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_num_processes_env(clean_env):
    clean_env.setenv("HEOMGEN_NUM_PROCESSES", "3")
    clean_env.setenv("SLURM_CPUS_PER_TASK", "5")
    assert available_cpu_count() == 3


def test_slurm_env(clean_env):
    clean_env.setenv("HEOMGEN_NUM_PROCESSES", "0")
    clean_env.setenv("SLURM_CPUS_PER_TASK", "5")
    assert available_cpu_count() == 5


def test_cpu_count_fallback(clean_env):
    assert available_cpu_count() >= 1


def test_num_cpus(clean_env):
    settings = Settings()
    clean_env.setenv("HEOMGEN_NUM_PROCESSES", "2")
    assert settings.num_cpus == 2
    settings.num_cpus = 4
    assert settings.num_cpus == 4
    with pytest.raises(ValueError):
        settings.num_cpus = 0
    settings.num_cpus = None
    clean_env.setenv("HEOMGEN_NUM_PROCESSES", "6")
    assert settings.num_cpus == 6


@pytest.mark.parametrize(["value", "expected"], [
    ("", False),
    ("0", False),
    ("false", False),
    ("1", True),
    ("True", True),
])
def test_debug_env(monkeypatch, value, expected):
    monkeypatch.setenv("HEOMGEN_DEBUG", value)
    assert Settings().debug is expected


def test_log_handler():
    settings = Settings()
    assert settings.log_handler == "default"
    settings.log_handler = "null"
    assert settings.log_handler == "null"
    with pytest.raises(ValueError):
        settings.log_handler = "syslog"


def test_str():
    assert str(Settings()).startswith("heomgen settings:")


def test_global_settings():
    assert isinstance(heomgen.settings, Settings)


class TestGetLogger:
    @pytest.fixture
    def settings(self, monkeypatch):
        monkeypatch.setattr(heomgen.settings, "_debug", False)
        monkeypatch.setattr(heomgen.settings, "_log_handler", "default")
        return heomgen.settings

    def test_stream_policy(self, settings):
        logger = get_logger("heomgen.tests.stream")
        assert logger.name == "heomgen.tests.stream"
        assert logger.level == logging.WARN
        assert not logger.propagate
        assert any(
            isinstance(handler, logging.StreamHandler)
            for handler in logger.handlers
        )
        n_handlers = len(logger.handlers)
        get_logger("heomgen.tests.stream")
        assert len(logger.handlers) == n_handlers

    def test_null_policy(self, settings):
        settings.log_handler = "null"
        logger = get_logger("heomgen.tests.null")
        assert any(
            isinstance(handler, logging.NullHandler)
            for handler in logger.handlers
        )

    def test_debug_level(self, settings):
        settings.debug = True
        logger = get_logger("heomgen.tests.debug")
        assert logger.level == logging.DEBUG

    def test_calling_module_name(self, settings):
        logger = get_logger()
        assert logger.name == __name__
