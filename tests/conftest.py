# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import pytest

from tagmigrate.core.config import TagMigrateConfig, set_config
from tagmigrate.core.store import EngineStore
from tagmigrate.core.versioning.models import Resource
from tagmigrate.core.versioning.resource_names import parse_version_tag

_AUTO = object()


def bpmn_xml(key="invoice", tag=None, name=None, executable=True, marker=""):
    """Minimal Camunda-style BPMN document with one process"""
    tag_attr = f' camunda:versionTag="{tag}"' if tag is not None else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL"'
        ' xmlns:camunda="http://camunda.org/schema/1.0/bpmn" id="Definitions_1">\n'
        f'  <bpmn:process id="{key}" name="{name or key}"'
        f' isExecutable="{str(executable).lower()}"{tag_attr}>\n'
        f"    <bpmn:documentation>{marker}</bpmn:documentation>\n"
        "  </bpmn:process>\n"
        "</bpmn:definitions>\n"
    ).encode("utf-8")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep config, logs and databases inside tmp_path"""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("TAGMIGRATE_HOME", str(tmp_path / ".tagmigrate"))
    monkeypatch.setenv("TAGMIGRATE_NO_FILE_LOGS", "true")
    for name in ("TAGMIGRATE_DB", "TAGMIGRATE_MIGRATIONS", "TAGMIGRATE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def store():
    store = EngineStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def config():
    return TagMigrateConfig()


@pytest.fixture
def make_resource():
    """Build a BPMN resource whose declared tag defaults to the file name's tag"""

    def _make(file_name, key="invoice", tag=_AUTO, marker=""):
        if tag is _AUTO:
            tag = parse_version_tag(file_name)
        return Resource(name=file_name, content=bpmn_xml(key, tag, marker=marker))

    return _make
